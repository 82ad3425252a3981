# settings.py
import copy
import logging
import threading

from sqlalchemy import select

from models import SystemSetting

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict = {
    "pdf_logo": {"url": "/logo.png", "width": 33, "height": 22},
    "warranty_policies": {
        "policies": [
            "Garantía {warrantyDays} días por defectos de mano de obra y repuestos.",
            "NO cubre daños por mal uso, golpes, caídas o líquidos.",
            "Presentar boleta o factura para hacer efectiva la garantía.",
            "Cualquier reparación por terceros anula la garantía.",
        ],
    },
}

_cached_settings: dict | None = None
_cache_lock = threading.Lock()


def get_system_settings(session) -> dict:
    """
    Returns DEFAULT_SETTINGS overlaid with every system_settings row
    (top-level keys replace, they are not deep-merged).

    A successful load is memoized for the whole process; a failed query
    falls back to the defaults without caching so the next call retries.
    """
    global _cached_settings
    with _cache_lock:
        if _cached_settings is not None:
            return copy.deepcopy(_cached_settings)

    try:
        rows = session.execute(select(SystemSetting)).scalars().all()
    except Exception:
        logger.warning("Could not load system settings, using defaults", exc_info=True)
        return copy.deepcopy(DEFAULT_SETTINGS)

    merged = copy.deepcopy(DEFAULT_SETTINGS)
    for row in rows:
        if isinstance(row.setting_value, dict):
            merged[row.setting_key] = row.setting_value

    with _cache_lock:
        _cached_settings = merged
    return copy.deepcopy(merged)


def clear_settings_cache() -> None:
    global _cached_settings
    with _cache_lock:
        _cached_settings = None
