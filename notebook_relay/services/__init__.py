"""Business logic services module."""

import importlib as _importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .accounts import AccountStore as AccountStore
    from .classifier import ResponseClassifier as ResponseClassifier
    from .notebooks import NotebookDirectory as NotebookDirectory
    from .relay_service import RelayService as RelayService
    from .session import SessionManager as SessionManager

_LAZY_MODULE_MAP = {
    "AccountStore": ("notebook_relay.services.accounts", "AccountStore"),
    "ResponseClassifier": ("notebook_relay.services.classifier", "ResponseClassifier"),
    "NotebookDirectory": ("notebook_relay.services.notebooks", "NotebookDirectory"),
    "RelayService": ("notebook_relay.services.relay_service", "RelayService"),
    "SessionManager": ("notebook_relay.services.session", "SessionManager"),
}

__all__ = list(_LAZY_MODULE_MAP.keys())


def __getattr__(name: str):
    """Lazy import with explicit mapping - importlib based."""
    if name in _LAZY_MODULE_MAP:
        module_path, attr_name = _LAZY_MODULE_MAP[name]
        module = _importlib.import_module(module_path)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
