"""Gateway resolution shared by ``gatehouse serve`` and ``gatehouse routes``.

A ``"module:attribute"`` import string selects a user-built gateway;
without one, the standard deployment is built from ``GATEHOUSE_*``
variables.
"""

import importlib
import sys

from gatehouse.app import Gateway
from gatehouse.cli import EXIT_CONFIG
from gatehouse.config import GatewayConfig
from gatehouse.errors import ConfigurationError


def resolve_gateway(import_string: str | None) -> Gateway:
    """Resolve an import string (or the environment) to a Gateway.

    Exits with ``EXIT_CONFIG`` when resolution or configuration fails.
    """
    try:
        if import_string is None:
            return Gateway.from_config(GatewayConfig.from_env())
        return import_gateway(import_string)
    except (ConfigurationError, ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_CONFIG) from exc


def import_gateway(import_string: str) -> Gateway:
    """Resolve an import string to a Gateway instance.

    Accepts ``"module:attribute"`` format.  When the attribute portion
    is omitted, defaults to ``"gateway"``.  A callable that is not a
    Gateway is treated as a factory and called.

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the attribute does not exist on the module.
        TypeError: If the resolved object is not a Gateway or factory.
    """
    module_path, _, attr_name = import_string.partition(":")
    if not attr_name:
        attr_name = "gateway"

    module = importlib.import_module(module_path)
    obj = getattr(module, attr_name)

    if callable(obj) and not isinstance(obj, Gateway):
        try:
            obj = obj()
        except Exception as exc:
            msg = f"Factory function {import_string!r} raised an error: {exc}"
            raise TypeError(msg) from exc

    if not isinstance(obj, Gateway):
        msg = f"{import_string!r} resolved to {type(obj).__name__}, not a gatehouse.Gateway"
        raise TypeError(msg)

    return obj
