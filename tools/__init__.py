"""Lazy exports for tools package to avoid import-time dependency cycles."""

from __future__ import annotations

from importlib import import_module
from typing import Dict, Tuple

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "MarketDataService": ("tools.market_data", "MarketDataService"),
    "NSEClient": ("tools.nse_client", "NSEClient"),
    "SqliteDurableStore": ("tools.durable_store", "SqliteDurableStore"),
    "compute_indicator_summary": ("tools.indicators", "compute_indicator_summary"),
    "get_health_status": ("tools.health_checker", "get_health_status"),
}

__all__ = sorted(_EXPORTS.keys())


def __getattr__(name: str):
    if name not in _EXPORTS:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module_name, attr_name = _EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
