# tenant_cache/config.py
import os

DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./tenant_cache.db"
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# Cache configuration:
#   REDIS_URL: remote cache store; empty means the local fallback is used from the start
#   CACHE_DEFAULT_TTL_SECONDS: TTL for routes that do not pass one
#   CACHE_CAPACITY: max number of items (local fallback only)
#   CACHE_SWEEP_INTERVAL_SECONDS: how often the local fallback purges expired entries
REDIS_URL = os.getenv("REDIS_URL", "")
CACHE_KEY_PREFIX = "user"
CACHE_DEFAULT_TTL_SECONDS = int(os.getenv("CACHE_DEFAULT_TTL_SECONDS", "600"))  # 10 minutes
CACHE_CAPACITY = int(os.getenv("CACHE_CAPACITY", "10000"))
CACHE_SWEEP_INTERVAL_SECONDS = int(os.getenv("CACHE_SWEEP_INTERVAL_SECONDS", "120"))

# Redis connect policy. Exceeding any cap demotes to the local fallback until restart.
REDIS_CONNECT_MAX_ATTEMPTS = int(os.getenv("REDIS_CONNECT_MAX_ATTEMPTS", "10"))
REDIS_CONNECT_BACKOFF_STEP_MS = int(os.getenv("REDIS_CONNECT_BACKOFF_STEP_MS", "100"))
REDIS_CONNECT_MAX_BACKOFF_MS = int(os.getenv("REDIS_CONNECT_MAX_BACKOFF_MS", "3000"))
REDIS_CONNECT_MAX_TOTAL_SECONDS = float(os.getenv("REDIS_CONNECT_MAX_TOTAL_SECONDS", "30"))
REDIS_SOCKET_TIMEOUT_SECONDS = float(os.getenv("REDIS_SOCKET_TIMEOUT_SECONDS", "2"))
