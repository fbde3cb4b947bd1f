from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from shapeflow.analyser import Analyser


class Candidate(Protocol):
    """A pass-specific candidate match object."""
    ...


class Pass(ABC):
    """Base class for rewrites of an analysed graph."""

    @abstractmethod
    def match(self, analyser: Analyser) -> Iterable[Candidate]:
        raise NotImplementedError

    @abstractmethod
    def apply(self, analyser: Analyser, candidate: Candidate) -> None:
        raise NotImplementedError


class Pipeline:
    """An ordered sequence of passes."""

    def __init__(self, passes: list[Pass]) -> None:
        self._passes = passes

    def run(self, analyser: Analyser) -> list[Any]:
        """Run each pass to a fixed point; return the applied candidates."""
        applied: list[Any] = []
        for p in self._passes:
            while True:
                candidates = list(p.match(analyser))
                if not candidates:
                    break
                for c in candidates:
                    p.apply(analyser, c)
                    applied.append(c)
        return applied
