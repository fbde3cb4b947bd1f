"""
Partial information about tensors.

The task of the analyser is to tag every edge in the graph with information
about the tensors that flow through it: their datatype, their shape and
possibly their value. During the analysis we might only know some of that
information (say, that an edge carries tensors of rank 4 without knowing
their precise dimensions). Facts hold that partial information. Each edge
starts with the most general fact and gets specialized by unification until
a fixed point is reached.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from itertools import zip_longest
from typing import Any, ClassVar, Generic, TypeVar

import numpy as np

from shapeflow.ir.errors import UnificationError
from shapeflow.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
F = TypeVar("F", bound="Fact")


class Fact(ABC):
    """Partial information about any value."""

    @abstractmethod
    def concretize(self) -> Any | None:
        """Returns the concrete value if the fact fully determines it."""
        raise NotImplementedError

    def is_concrete(self) -> bool:
        return self.concretize() is not None

    @abstractmethod
    def unify(self: F, other: F) -> F:
        """Returns the most specific fact consistent with both facts."""
        raise NotImplementedError


def unify(a: F, b: F) -> F:
    return a.unify(b)


class GenericFact(Fact, Generic[T]):
    """Either any value (``value is None``) or exactly one value."""

    __hash__ = None  # type: ignore[assignment]

    def __init__(self, value: T | None = None) -> None:
        self.value: T | None = None if value is None else self._normalize(value)

    @classmethod
    def only(cls, value: T) -> GenericFact[T]:
        if value is None:
            raise ValueError(f"{cls.__name__}.only() needs a value")
        return cls(value)

    def _normalize(self, value: Any) -> T:
        return value

    def _same(self, a: T, b: T) -> bool:
        return a == b

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        assert isinstance(other, GenericFact)
        if self.value is None or other.value is None:
            return self.value is None and other.value is None
        return self._same(self.value, other.value)

    def __repr__(self) -> str:
        inner = "_" if self.value is None else self._format(self.value)
        return f"{type(self).__name__}({inner})"

    def _format(self, value: T) -> str:
        return repr(value)

    def concretize(self) -> T | None:
        return self.value

    def unify(self, other: GenericFact[T]) -> GenericFact[T]:
        if other.value is None:
            return self
        if self.value is None:
            return other
        if self._same(self.value, other.value):
            return self
        raise UnificationError(
            f"Impossible to unify {self!r} with {other!r}.", self, other
        )


class TypeFact(GenericFact[str]):
    """Partial information about a datatype, stored as a numpy dtype name."""

    def _normalize(self, value: Any) -> str:
        return np.dtype(value).name

    def _format(self, value: str) -> str:
        return value

    def __str__(self) -> str:
        return "_" if self.value is None else self.value


class ValueFact(GenericFact[np.ndarray]):
    """Partial information about the value of a tensor."""

    def _normalize(self, value: Any) -> np.ndarray:
        arr = np.array(value)
        arr.flags.writeable = False
        return arr

    def _same(self, a: np.ndarray, b: np.ndarray) -> bool:
        if a.dtype != b.dtype or a.shape != b.shape:
            return False
        # NaN only compares equal to itself for inexact dtypes.
        if a.dtype.kind in "fc":
            return bool(np.array_equal(a, b, equal_nan=True))
        return bool(np.array_equal(a, b))

    def _format(self, value: np.ndarray) -> str:
        return np.array2string(value, separator=",", threshold=16)


@dataclass(frozen=True)
class DimFact(Fact):
    """Partial information about a dimension: any, streamed or exactly n."""

    value: int | None = None
    streamed: bool = False

    ANY: ClassVar[DimFact]
    STREAMED: ClassVar[DimFact]

    @classmethod
    def only(cls, n: int) -> DimFact:
        if n < 0:
            raise ValueError(f"Dimensions must be non-negative, got {n}")
        return cls(int(n))

    @classmethod
    def coerce(cls, dim: Any) -> DimFact:
        if isinstance(dim, DimFact):
            return dim
        if dim is None or dim == "_":
            return cls.ANY
        if dim == "S":
            return cls.STREAMED
        if isinstance(dim, (int, np.integer)) and not isinstance(dim, bool):
            return cls.only(int(dim))
        raise ValueError(f"Cannot build a dimension fact from {dim!r}")

    def is_streamed(self) -> bool:
        return self.streamed

    def concretize(self) -> int | None:
        return None if self.streamed else self.value

    def is_concrete(self) -> bool:
        # A streamed dimension is as determined as it will ever get.
        return self.streamed or self.value is not None

    def unify(self, other: DimFact) -> DimFact:
        if other == DimFact.ANY:
            return self
        if self == DimFact.ANY:
            return other
        if self == other:
            return self
        raise UnificationError(
            f"Impossible to unify dimensions {self} and {other}.", self, other
        )

    def __str__(self) -> str:
        if self.streamed:
            return "S"
        return "_" if self.value is None else str(self.value)

    __repr__ = __str__


DimFact.ANY = DimFact()
DimFact.STREAMED = DimFact(streamed=True)


@dataclass(frozen=True)
class ShapeFact(Fact):
    """
    Partial information about a shape.

    ``ShapeFact.closed([1, 2])`` is exactly the shape ``[1, 2]`` while
    ``ShapeFact.open([1, 2])`` matches any shape starting with ``[1, 2]``
    (``[1, 2, k]``, ``[1, 2, i, j]``...). ``ShapeFact.open()`` matches any
    shape at all.
    """

    dims: tuple[DimFact, ...] = ()
    is_open: bool = True

    @classmethod
    def open(cls, dims: Any = ()) -> ShapeFact:
        return cls(tuple(DimFact.coerce(d) for d in dims), True)

    @classmethod
    def closed(cls, dims: Any = ()) -> ShapeFact:
        return cls(tuple(DimFact.coerce(d) for d in dims), False)

    @property
    def rank(self) -> int | None:
        return None if self.is_open else len(self.dims)

    def streamed_axis(self) -> int | None:
        for axis, dim in enumerate(self.dims):
            if dim.is_streamed():
                return axis
        return None

    def concretize(self) -> list[int] | None:
        if self.is_open:
            return None
        dims = [d.concretize() for d in self.dims]
        if any(d is None for d in dims):
            return None
        return [int(d) for d in dims]  # type: ignore[arg-type]

    def unify(self, other: ShapeFact) -> ShapeFact:
        dims: list[DimFact] = []
        for a, b in zip_longest(self.dims, other.dims):
            if a is not None and b is not None:
                try:
                    dims.append(a.unify(b))
                except UnificationError as e:
                    raise e.add_context(f"While unifying shapes {self} and {other}")
            elif a is not None and other.is_open:
                dims.append(a)
            elif b is not None and self.is_open:
                dims.append(b)
            else:
                raise UnificationError(
                    f"Shapes of different rank cannot unify (found {self} and {other}).",
                    self,
                    other,
                )
        return ShapeFact(tuple(dims), self.is_open and other.is_open)

    def __str__(self) -> str:
        parts = [str(d) for d in self.dims]
        if self.is_open:
            parts.append("..")
        return "[" + ",".join(parts) + "]"


@dataclass(frozen=True)
class TensorFact(Fact):
    """Partial information about the datatype, shape and value of a tensor."""

    datatype: TypeFact = field(default_factory=TypeFact)
    shape: ShapeFact = field(default_factory=ShapeFact.open)
    value: ValueFact = field(default_factory=ValueFact)

    def __post_init__(self) -> None:
        if not isinstance(self.datatype, TypeFact):
            object.__setattr__(self, "datatype", TypeFact(self.datatype))
        if not isinstance(self.shape, ShapeFact):
            object.__setattr__(self, "shape", ShapeFact.closed(self.shape))
        if not isinstance(self.value, ValueFact):
            object.__setattr__(self, "value", ValueFact(self.value))

    @classmethod
    def from_tensor(cls, tensor: Any) -> TensorFact:
        arr = np.asarray(tensor)
        return cls(TypeFact(arr.dtype), ShapeFact.closed(arr.shape), ValueFact(arr))

    def without_value(self) -> TensorFact:
        return replace(self, value=ValueFact())

    def concretize(self) -> np.ndarray | None:
        return self.value.concretize()

    def unify(self, other: TensorFact) -> TensorFact:
        fact = TensorFact(
            self.datatype.unify(other.datatype),
            self.shape.unify(other.shape),
            self.value.unify(other.value),
        )
        logger.debug("Unifying %s with %s into %s.", self, other, fact)
        return fact

    def __str__(self) -> str:
        text = f"{self.datatype}{self.shape}"
        if self.value.value is not None:
            text += f" = {self.value._format(self.value.value)}"
        return text


def shapefact(*dims: Any) -> ShapeFact:
    """
    Builds a shape fact, e.g. ``shapefact(1, 2, None)`` for ``[1, 2, _]``.

    A trailing ``...`` makes the fact open: ``shapefact(1, 2, ...)`` matches
    any shape that starts with ``[1, 2]`` and ``shapefact(...)`` any shape.
    """
    if dims and dims[-1] is Ellipsis:
        return ShapeFact.open(dims[:-1])
    return ShapeFact.closed(dims)


def parse_shape(text: str) -> ShapeFact:
    """Parses the ``[1,_,S,..]`` notation (brackets optional)."""
    body = text.strip()
    if body.startswith("[") and body.endswith("]"):
        body = body[1:-1]
    tokens = [tok.strip() for tok in body.split(",") if tok.strip()]
    is_open = bool(tokens) and tokens[-1] == ".."
    if is_open:
        tokens = tokens[:-1]
    dims: list[DimFact] = []
    for tok in tokens:
        if tok in ("_", "S"):
            dims.append(DimFact.coerce(tok))
        elif tok.isdigit():
            dims.append(DimFact.only(int(tok)))
        else:
            raise ValueError(f"Invalid dimension '{tok}' in shape '{text}'")
    return ShapeFact(tuple(dims), is_open)


_FACT_RE = re.compile(r"^\s*(?P<dtype>[A-Za-z_]\w*)?\s*(?P<shape>\[[^\]]*\])?\s*$")


def parse_fact(text: str) -> TensorFact:
    """Parses ``float32[1,2,..]``, ``[1,2]`` or ``int64`` into a tensor fact."""
    m = _FACT_RE.match(text)
    if m is None or (m.group("dtype") is None and m.group("shape") is None):
        raise ValueError(f"Invalid tensor fact '{text}'")
    dtype = m.group("dtype")
    datatype = TypeFact()
    if dtype is not None and dtype != "_":
        try:
            datatype = TypeFact(dtype)
        except TypeError as e:
            raise ValueError(f"Unknown datatype '{dtype}'") from e
    shape = parse_shape(m.group("shape")) if m.group("shape") else ShapeFact.open()
    return TensorFact(datatype, shape)
