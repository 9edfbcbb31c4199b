from .rate_limit import get_rate_limit, limiter

__all__ = ["limiter", "get_rate_limit"]
