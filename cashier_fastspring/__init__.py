"""FastSpring subscription webhook synchronisation."""

__version__ = "1.0.0"
