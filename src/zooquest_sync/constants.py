# SPDX-License-Identifier: MIT
"""Constants used throughout the sync layer.

This module centralizes default values for:

- **Cache TTLs**: per-collection freshness windows (seconds)
- **Timers**: periodic refresh, expired-entry sweep and reachability probing
- **Transport**: API base URL, collection endpoints and request timeout
"""

# Cache TTL (seconds)
DEFAULT_CACHE_TTL: float = 300.0  # 5 minutes
ANIMALS_CACHE_TTL: float = 600.0  # 10 minutes
EVENTS_CACHE_TTL: float = 300.0  # 5 minutes
NOTIFICATIONS_CACHE_TTL: float = 120.0  # 2 minutes

# Cache keys
MAX_CACHE_KEY_LENGTH: int = 255
LIST_KEY_SUFFIX: str = "all"
DETAIL_KEY_INFIX: str = "detail"

# Timers (seconds)
DEFAULT_REFRESH_INTERVAL: float = 300.0
DEFAULT_CLEANUP_INTERVAL: float = 300.0
DEFAULT_PROBE_INTERVAL: float = 30.0

# Pending queue flush policy
DEFAULT_FLUSH_MAX_RETRIES: int = 0
DEFAULT_FLUSH_RETRY_DELAY: float = 1.0

# Transport defaults
DEFAULT_API_BASE_URL: str = "http://localhost:3000/api"
DEFAULT_HEALTH_ENDPOINT: str = "/health"
DEFAULT_REQUEST_TIMEOUT: float = 20.0
DEFAULT_FETCH_RETRIES: int = 2

# Collection name -> list endpoint
DEFAULT_COLLECTION_ENDPOINTS: dict[str, str] = {
    "animals": "/animals",
    "events": "/events",
    "notifications": "/admin/notifications",
}

DEFAULT_COLLECTION_TTLS: dict[str, float] = {
    "animals": ANIMALS_CACHE_TTL,
    "events": EVENTS_CACHE_TTL,
    "notifications": NOTIFICATIONS_CACHE_TTL,
}
