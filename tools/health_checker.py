"""System health checks for API readiness."""

from __future__ import annotations

import importlib.util
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from market_cache.enhanced_cache import EnhancedCacheManager
from market_cache.market_hours import default_calendar


def _dependency_status() -> Dict[str, bool]:
    deps = {
        "fastapi": "fastapi",
        "httpx": "httpx",
        "pandas": "pandas",
        "numpy": "numpy",
    }
    return {name: importlib.util.find_spec(module) is not None for name, module in deps.items()}


def _file_size(path: Path) -> int:
    return path.stat().st_size if path.is_file() else 0


def get_health_status(
    manager: Optional[EnhancedCacheManager] = None,
    durable_store_path: Optional[str] = None,
) -> Dict[str, object]:
    dep = _dependency_status()
    all_ok = all(dep.values())
    calendar = manager.calendar if manager is not None else default_calendar()
    session = calendar.session_state()

    status: Dict[str, object] = {
        "status": "healthy" if all_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "dependencies": dep,
        "market": {"is_open": session.is_open, "next_open": session.next_open.isoformat()},
    }
    if manager is not None:
        stats = manager.get_stats()
        status["cache"] = {
            "keys": {name: tier["keys"] for name, tier in stats["tiers"].items()},
            "active_polling": len(stats["polling"]["active_keys"]),
        }
    if durable_store_path:
        status["durable_store"] = {
            "path": durable_store_path,
            "size_bytes": _file_size(Path(durable_store_path)),
        }
    return status
