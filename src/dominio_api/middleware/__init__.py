from dominio_api.middleware.rate_limit import RateLimitDecision, RateLimiter, rate_limit_key

__all__ = ["RateLimitDecision", "RateLimiter", "rate_limit_key"]
