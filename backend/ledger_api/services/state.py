from ledger_api.core.cache import SummaryCache
from ledger_api.core.config import settings
from ledger_api.core.rate_limit import RateLimiter

summary_cache = SummaryCache(redis_url=settings.redis_url, key_prefix=settings.redis_prefix)
rate_limiter = RateLimiter(redis_url=settings.redis_url, key_prefix=settings.redis_prefix)
