import logging
import zoneinfo


logger = logging.getLogger(__name__)


def resolve_timezone(timezone_id: str | None) -> zoneinfo.ZoneInfo | None:
    """
    Resolve an IANA timezone id. Unknown or malformed ids resolve to None,
    callers then compare hours in UTC.
    """
    if not timezone_id:
        return None
    try:
        return zoneinfo.ZoneInfo(timezone_id)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning("Unknown timezone %s, falling back to UTC", timezone_id)
        return None
