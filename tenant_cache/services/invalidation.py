# tenant_cache/services/invalidation.py
import logging
from typing import Any, Optional

from .cache_factory import get_cache
from .keys import derive_pattern

logger = logging.getLogger(__name__)


async def invalidate(tenant_id: Any, endpoint: Optional[str] = None) -> int:
    """
    Drop cached responses for one tenant after a successful write.

    With `endpoint`, every parameter variant of that endpoint goes (prefix match);
    without it, all of the tenant's entries go. Returns the number of keys removed.

    Never raises: the write already succeeded, and a stale entry still expires with its TTL.
    """
    try:
        pattern = derive_pattern(tenant_id, endpoint)
        removed = await get_cache().delete_by_prefix_pattern(pattern)
    except Exception:
        logger.exception("invalidate: failed for tenant %s endpoint %s", tenant_id, endpoint)
        return 0
    logger.debug("invalidate: %s removed %s key(s)", pattern, removed)
    return removed
