"""Acquisition strategy registry.

Loads a strategy by name and returns an initialised
:class:`AcquisitionStrategy`.  Supports the built-in strategies
(``self-signed``, ``acme``, ``import``) and custom strategies via the
``ext:`` prefix.

Usage::

    from milou_ssl.acquisition.registry import load_strategy

    strategy = load_strategy("acme", context)
    material = strategy.acquire(request)
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from milou_ssl.acquisition.base import AcquisitionStrategy
from milou_ssl.core.errors import AcquisitionError

if TYPE_CHECKING:
    from milou_ssl.acquisition.base import StrategyContext

log = logging.getLogger(__name__)

# Maps strategy name -> (module_path, class_name)
_BUILTIN_STRATEGIES: dict[str, tuple[str, str]] = {
    "self-signed": ("milou_ssl.acquisition.self_signed", "SelfSignedStrategy"),
    "acme": ("milou_ssl.acquisition.acme", "AcmeStrategy"),
    "import": ("milou_ssl.acquisition.importer", "ImportStrategy"),
}


def load_strategy(name: str, context: StrategyContext) -> AcquisitionStrategy:
    """Load and return the named acquisition strategy.

    Raises
    ------
    AcquisitionError
        If the strategy cannot be loaded.

    """
    if name in _BUILTIN_STRATEGIES:
        return _load(name, *_BUILTIN_STRATEGIES[name], context)
    if name.startswith("ext:"):
        fqn = name[4:]
        module_path, _, cls_name = fqn.rpartition(".")
        if not module_path:
            msg = (
                f"invalid external strategy '{fqn}': must be fully "
                "qualified (e.g. 'mypackage.module.ClassName')"
            )
            raise AcquisitionError(name, msg)
        return _load(name, module_path, cls_name, context)
    msg = (
        f"unknown strategy '{name}'; built-in options: {sorted(_BUILTIN_STRATEGIES)}. "
        "Use 'ext:mypackage.module.ClassName' for custom strategies."
    )
    raise AcquisitionError(name, msg)


def _load(label: str, module_path: str, cls_name: str, context: StrategyContext) -> AcquisitionStrategy:
    try:
        module = importlib.import_module(module_path)
        cls = getattr(module, cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"failed to load strategy class {module_path}.{cls_name}: {exc}"
        raise AcquisitionError(label, msg) from exc

    _validate_class(cls, label)
    log.debug("Loaded acquisition strategy: %s", label)
    return cls(context)


def _validate_class(cls: type, label: str) -> None:
    """Verify that a strategy class implements the interface."""
    if not (isinstance(cls, type) and issubclass(cls, AcquisitionStrategy)):
        msg = f"strategy '{label}' is not a subclass of AcquisitionStrategy"
        raise AcquisitionError(label, msg)
    method = getattr(cls, "acquire", None)
    if method is None or getattr(method, "__isabstractmethod__", False):
        msg = f"strategy '{label}' does not implement 'acquire()'"
        raise AcquisitionError(label, msg)
