from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from shapeflow.ir.errors import OpError
from shapeflow.ops.base import Op

O = TypeVar("O", bound=type[Op])

_REGISTRY: dict[str, type[Op]] = {}


def register_op(op_name: str) -> Callable[[O], O]:
    def wrapper(cls: O) -> O:
        cls.op_name = op_name
        _REGISTRY[op_name] = cls
        return cls

    return wrapper


def registered_ops() -> list[str]:
    return sorted(_REGISTRY)


def build_op(op_name: str, **attributes: Any) -> Op:
    cls = _REGISTRY.get(op_name)
    if cls is None:
        raise OpError(f"Unknown operator '{op_name}'", code="EUNKNOWN_OP")
    try:
        return cls(**attributes)
    except TypeError as e:
        raise OpError(f"Invalid attributes for {op_name}: {e}", code="EATTR") from e
