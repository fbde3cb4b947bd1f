from __future__ import annotations

from typing import Any


class AnalysisError(Exception):
    """Base error of the analysis engine, with a code and a context stack."""

    default_code = "EANALYSIS"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context: list[str] = []

    def add_context(self, context: str) -> AnalysisError:
        self.context.append(context)
        return self

    def __str__(self) -> str:
        return ": ".join([*reversed(self.context), self.message])


class UnificationError(AnalysisError):
    """Two facts about the same slot are incompatible."""

    default_code = "EUNIFY"

    def __init__(self, message: str, left: Any, right: Any) -> None:
        super().__init__(message)
        self.left = left
        self.right = right


class InvalidReferenceError(AnalysisError):
    default_code = "EREF"

    def __init__(self, message: str, node_id: Any = None) -> None:
        super().__init__(message)
        self.node_id = node_id


class InvariantViolation(AnalysisError):
    """An operator broke a structural assumption of the analyser."""

    default_code = "EINVARIANT"

    def __init__(self, message: str, node_id: int | None = None) -> None:
        super().__init__(message)
        self.node_id = node_id


class PlanError(AnalysisError):
    default_code = "EPLAN"

    def __init__(
        self, message: str, code: str | None = None, node_id: int | None = None
    ) -> None:
        super().__init__(message, code)
        self.node_id = node_id


class ConvergenceError(AnalysisError):
    default_code = "ECONVERGE"

    def __init__(self, message: str, passes: int) -> None:
        super().__init__(message)
        self.passes = passes


class OpError(AnalysisError):
    default_code = "EOP"


class StreamingError(AnalysisError):
    default_code = "ESTREAM"
