from __future__ import annotations

from importlib import import_module
from typing import Any

_BACKEND_CANDIDATES = ("ib_async", "ib_insync")
_LAST_IMPORT_ERROR: Exception | None = None
_backend: Any | None = None
_backend_name = ""

for candidate in _BACKEND_CANDIDATES:
    try:
        _backend = import_module(candidate)
        _backend_name = candidate
        break
    except ImportError as exc:
        _LAST_IMPORT_ERROR = exc

if _backend is None:
    raise ModuleNotFoundError(
        "Could not import an IB client backend. Install one of: "
        + ", ".join(_BACKEND_CANDIDATES)
    ) from _LAST_IMPORT_ERROR

try:
    _util_module = import_module(f"{_backend_name}.util")
except ImportError:
    _util_module = None


def _backend_attr(name: str) -> Any:
    attr = getattr(_backend, name, None)
    if attr is None:
        raise ImportError(f"{_backend_name} does not provide {name}")
    return attr


IB = _backend_attr("IB")
IB_CLIENT_BACKEND = _backend_name
Stock = _backend_attr("Stock")
UNSET_DOUBLE = getattr(_util_module, "UNSET_DOUBLE", 1.7976931348623157e308)


__all__ = [
    "IB",
    "IB_CLIENT_BACKEND",
    "Stock",
    "UNSET_DOUBLE",
]
