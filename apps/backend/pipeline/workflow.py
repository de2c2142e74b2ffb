"""
Fire-and-forget workflows.

A workflow is a pipeline behind a single-worker executor: send() enqueues a
run and returns immediately; runs execute one at a time in submission order
on the workflow's own thread, followed by the on_success / on_failure hook.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Generic, List, Optional

from pipeline.framework import BasePipeline, I, O, PipelineContext, PipelineResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowRun(Generic[I]):
    """Message that triggers one workflow run. profile_id is "system" for cron runs."""
    input: I
    profile_id: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))


class BaseWorkflow(BasePipeline[I, O]):
    """Pipeline processed asynchronously by a dedicated worker thread"""

    def __init__(self):
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self.name)
                logger.info(f"[{self.name}] Workflow worker started")

    def stop(self, wait_for_pending: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait_for_pending)
            logger.info(f"[{self.name}] Workflow worker stopped")

    def send(self, message: WorkflowRun[I]) -> str:
        """
        Enqueue a run without waiting for it.

        Returns:
            The run id the pipeline context will carry
        """
        self.start()
        with self._lock:
            future = self._executor.submit(self._process, message)
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return message.run_id

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued run has finished. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def _process(self, message: WorkflowRun[I]) -> PipelineResult[O]:
        ctx = PipelineContext.with_run_id(message.run_id, message.profile_id)
        result = self.run_with_context(message.input, ctx)
        try:
            if result.is_success:
                self.on_success(result)
            else:
                self.on_failure(result)
        except Exception as e:
            logger.error(f"[{self.name}] Workflow hook raised: runId={result.run_id}, error={e}", exc_info=True)
        return result

    def on_success(self, result: PipelineResult[O]) -> None:
        logger.info(f"[{self.name}] Workflow completed: runId={result.run_id}, duration={result.duration_ms}ms")

    def on_failure(self, result: PipelineResult[O]) -> None:
        message = result.error.message if result.error else None
        logger.error(f"[{self.name}] Workflow failed: runId={result.run_id}, error={message}")
