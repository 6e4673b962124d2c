"""Cache Module - Caching and de-duplication of match scores."""
from core.cache.fingerprint import (
    CacheKey,
    ProfileFingerprinter,
    opportunity_tag,
    profile_tag,
)
from core.cache.score_cache import (
    FingerprintCache,
    CACHE_TTL_SECONDS
)

__all__ = [
    'CacheKey',
    'ProfileFingerprinter',
    'opportunity_tag',
    'profile_tag',
    'FingerprintCache',
    'CACHE_TTL_SECONDS'
]
