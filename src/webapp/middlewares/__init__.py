from src.webapp.middlewares.telegram_auth import TelegramAuthMiddleware
from src.webapp.middlewares.rate_limiter import RateLimiterMiddleware
from src.webapp.middlewares.subscription_check import SubscriptionCheckMiddleware

__all__ = ["TelegramAuthMiddleware", "RateLimiterMiddleware", "SubscriptionCheckMiddleware"] 