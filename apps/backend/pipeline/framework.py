"""
Step framework for ETL pipelines.

A step is a named unit of work: execute(input, ctx) returns its output or a
StepError. BaseStep.run adds timing and logging and turns any raised
exception into an UnexpectedError, so a misbehaving step can never crash the
pipeline that runs it. Steps compose with and_then; a pipeline wraps a
composed chain and reports a PipelineResult.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, Optional, TypeVar, Union

from pipeline.errors import StepError, StepException, UnexpectedError

logger = logging.getLogger(__name__)

I = TypeVar("I")
O = TypeVar("O")
O2 = TypeVar("O2")
A = TypeVar("A")


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)


@dataclass(frozen=True)
class PipelineContext:
    """
    Immutable per-run context.

    Steps derive updated copies with with_metadata(); the original is never
    mutated.
    """
    run_id: str
    profile_id: str
    started_at: datetime
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def create(cls, profile_id: str) -> "PipelineContext":
        return cls(
            run_id=str(uuid.uuid4()),
            profile_id=profile_id,
            started_at=datetime.now(timezone.utc),
        )

    @classmethod
    def with_run_id(cls, run_id: str, profile_id: str) -> "PipelineContext":
        return cls(run_id=run_id, profile_id=profile_id, started_at=datetime.now(timezone.utc))

    def with_metadata(self, key: str, value: str) -> "PipelineContext":
        return replace(self, metadata={**self.metadata, key: value})

    def with_metadata_entries(self, **entries: str) -> "PipelineContext":
        return replace(self, metadata={**self.metadata, **entries})

    def get_metadata(self, key: str) -> Optional[str]:
        return self.metadata.get(key)


@dataclass(frozen=True)
class PipelineResult(Generic[O]):
    run_id: str
    duration_ms: int
    output: Optional[O] = None
    error: Optional[StepError] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, run_id: str, output: O, duration_ms: int) -> "PipelineResult[O]":
        return cls(run_id=run_id, duration_ms=duration_ms, output=output)

    @classmethod
    def failure(cls, run_id: str, error: StepError, duration_ms: int) -> "PipelineResult[O]":
        return cls(run_id=run_id, duration_ms=duration_ms, error=error)


@dataclass(frozen=True)
class Transformed(Generic[A]):
    """Marks a value that has been through a transformer step."""
    value: A


class ProgressEmitter:
    """Receives progress updates from a running pipeline. The base class discards them."""

    def emit(self, step: int, total_steps: int, status: str, message: str) -> None:
        pass


NOOP_EMITTER = ProgressEmitter()


class BaseStep(Generic[I, O]):
    """Base class for pipeline steps"""

    name: str = "BaseStep"

    def execute(self, input: I, ctx: PipelineContext) -> Union[O, StepError]:
        raise NotImplementedError

    def run(self, input: I, ctx: PipelineContext) -> Union[O, StepError]:
        """
        Run the step with logging and timing.

        Never raises: StepException yields its inner error, anything else
        becomes an UnexpectedError with the exception as cause.
        """
        start_time = time.monotonic()
        logger.info(f"[{ctx.run_id}] Starting step: {self.name}")

        try:
            result = self.execute(input, ctx)
        except StepException as e:
            result = e.error
        except Exception as e:
            result = UnexpectedError(
                message=f"Unexpected error in step {self.name}: {e}",
                step_name=self.name,
                cause=e,
            )

        duration = _elapsed_ms(start_time)
        if isinstance(result, StepError):
            logger.error(f"[{ctx.run_id}] Failed step: {self.name} in {duration}ms - {result.message}")
        else:
            logger.info(f"[{ctx.run_id}] Completed step: {self.name} in {duration}ms")
        return result

    def and_then(self, next_step: "BaseStep[O, O2]") -> "BaseStep[I, O2]":
        """Compose with another step; an error here short-circuits next_step."""
        return _ComposedStep(self, next_step)

    @staticmethod
    def of(step_name: str, fn: Callable[[Any, PipelineContext], Any]) -> "BaseStep":
        return _FunctionStep(step_name, fn)

    @staticmethod
    def identity(step_name: str) -> "BaseStep":
        return _FunctionStep(step_name, lambda input, ctx: input)

    @staticmethod
    def fail(step_name: str, error: StepError) -> "BaseStep":
        return _FunctionStep(step_name, lambda input, ctx: error)


class _FunctionStep(BaseStep):
    def __init__(self, name: str, fn: Callable[[Any, PipelineContext], Any]):
        self.name = name
        self.fn = fn

    def execute(self, input, ctx):
        return self.fn(input, ctx)


class _ComposedStep(BaseStep):
    def __init__(self, first: BaseStep, second: BaseStep):
        self.first = first
        self.second = second
        self.name = f"{first.name} -> {second.name}"

    def execute(self, input, ctx):
        intermediate = self.first.run(input, ctx)
        if isinstance(intermediate, StepError):
            return intermediate
        return self.second.run(intermediate, ctx)


class BasePipeline(Generic[I, O]):
    """Base class for pipelines orchestrating several steps"""

    name: str = "BasePipeline"

    def execute(self, input: I, ctx: PipelineContext) -> Union[O, StepError]:
        raise NotImplementedError

    def run(self, input: I, profile_id: str) -> PipelineResult[O]:
        """Run with a fresh context for profile_id."""
        return self.run_with_context(input, PipelineContext.create(profile_id))

    def run_with_context(self, input: I, ctx: PipelineContext) -> PipelineResult[O]:
        start_time = time.monotonic()
        logger.info(f"[{ctx.run_id}] Starting pipeline: {self.name}")

        try:
            result = self.execute(input, ctx)
        except StepException as e:
            result = e.error
        except Exception as e:
            result = UnexpectedError(
                message=f"Unexpected error in pipeline {self.name}: {e}",
                step_name=self.name,
                cause=e,
            )

        duration = _elapsed_ms(start_time)
        if isinstance(result, StepError):
            logger.error(f"[{ctx.run_id}] Failed pipeline: {self.name} in {duration}ms - {result.message}")
            return PipelineResult.failure(ctx.run_id, result, duration)

        logger.info(f"[{ctx.run_id}] Completed pipeline: {self.name} in {duration}ms")
        return PipelineResult.success(ctx.run_id, result, duration)

    @staticmethod
    def from_step(pipeline_name: str, step: BaseStep) -> "BasePipeline":
        return _StepPipeline(pipeline_name, lambda: step)

    @staticmethod
    def from_steps(pipeline_name: str, build_steps: Callable[[], BaseStep]) -> "BasePipeline":
        """Pipeline whose step chain is built lazily on each run."""
        return _StepPipeline(pipeline_name, build_steps)


class _StepPipeline(BasePipeline):
    def __init__(self, name: str, build_steps: Callable[[], BaseStep]):
        self.name = name
        self.build_steps = build_steps

    def execute(self, input, ctx):
        return self.build_steps().run(input, ctx)
