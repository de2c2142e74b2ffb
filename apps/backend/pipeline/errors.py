"""
Step error taxonomy.

Expected failures travel as values: a step returns a StepError instead of its
output. The subclass says where the failure happened; the message says why.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class StepError:
    message: str
    step_name: str
    cause: Optional[BaseException] = None

    kind = "Unknown"

    def to_exception(self) -> "StepException":
        return StepException(self)

    def __str__(self) -> str:
        return f"{self.kind} in {self.step_name}: {self.message}"


@dataclass(frozen=True)
class ExtractionError(StepError):
    kind = "Extraction"


@dataclass(frozen=True)
class TransformationError(StepError):
    kind = "Transformation"


@dataclass(frozen=True)
class LoadError(StepError):
    kind = "Load"


@dataclass(frozen=True)
class ValidationError(StepError):
    kind = "Validation"


@dataclass(frozen=True)
class NotFoundError(StepError):
    kind = "NotFound"


@dataclass(frozen=True)
class NetworkError(StepError):
    kind = "Network"


@dataclass(frozen=True)
class UnexpectedError(StepError):
    kind = "Unexpected"


class StepException(Exception):
    """Carries a StepError out of imperative code; unwrapped at the step boundary."""

    def __init__(self, error: StepError):
        super().__init__(error.message)
        self.error = error
