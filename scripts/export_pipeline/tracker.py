"""
Dependency-ordered step execution with retry, backoff and per-step state reporting.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from .config import RetryConfig
from .errors import CircularDependencyError, UnknownStepError
from .utils.logger import StructuredLogger


StepAction = Callable[[], Union[bool, Awaitable[bool]]]


class StepStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProcessingStep:
    """A named unit of work. ``execute`` may be sync or async and returns success."""
    name: str
    description: str
    execute: StepAction
    retryable: bool = False
    max_retries: int = 0
    dependencies: List[str] = field(default_factory=list)


@dataclass
class ProcessingState:
    step_name: str
    status: StepStatus = StepStatus.PENDING
    progress: Optional[int] = None
    total: Optional[int] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def duration(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time


async def _default_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


class ProgressTracker:
    """
    Runs registered steps one at a time in dependency order.

    A failed attempt (falsy result or exception) of a retryable step is retried after
    ``min(base * 2^(attempt-1), max)`` seconds, up to ``max_retries + 1`` attempts.
    The first step that fails for good stops the run.
    """

    def __init__(self, logger: Optional[StructuredLogger] = None,
                 retry: Optional[RetryConfig] = None,
                 sleep: Callable[[float], Awaitable[None]] = _default_sleep):
        self.logger = logger or StructuredLogger(context="ProgressTracker")
        self.retry = retry or RetryConfig()
        self._sleep = sleep
        self._steps: Dict[str, ProcessingStep] = {}
        self._state: Dict[str, ProcessingState] = {}
        self._completed: Set[str] = set()
        self._failed: Set[str] = set()
        self._cancelled = False

    def register_step(self, step: ProcessingStep) -> None:
        self._steps[step.name] = step
        self._state[step.name] = ProcessingState(step.name)

    def execution_order(self) -> List[str]:
        """
        Depth-first topological order over declared dependencies.

        Raises:
            CircularDependencyError: If the dependency graph has a cycle
            UnknownStepError: If a step depends on an unregistered step
        """
        visited: Set[str] = set()
        visiting: Set[str] = set()
        order: List[str] = []

        def visit(step_name: str) -> None:
            if step_name in visited:
                return
            if step_name in visiting:
                raise CircularDependencyError(f"Circular dependency detected involving step: {step_name}",
                                              step=step_name)
            visiting.add(step_name)
            for dependency in self._steps[step_name].dependencies:
                if dependency not in self._steps:
                    raise UnknownStepError(f'Step "{step_name}" depends on unknown step "{dependency}"',
                                           step=step_name)
                visit(dependency)
            visiting.discard(step_name)
            visited.add(step_name)
            order.append(step_name)

        for step_name in self._steps:
            visit(step_name)
        return order

    async def execute_all(self) -> bool:
        """Run every step in order. The order is computed, and may raise, before any step runs."""
        for step_name in self.execution_order():
            if not await self.execute_step(step_name):
                return False
        return True

    async def execute_step(self, step_name: str) -> bool:
        step = self._steps.get(step_name)
        if step is None:
            raise UnknownStepError(f"Unknown step: {step_name}", step=step_name)

        state = self._state[step_name]
        if self._cancelled:
            self._mark_failed(state, "Cancelled by user")
            return False
        if not all(dep in self._completed for dep in step.dependencies):
            self._mark_failed(state, "Dependencies not satisfied")
            return False

        max_attempts = step.max_retries + 1 if step.retryable and self.retry.enabled else 1
        attempts = 0

        while attempts < max_attempts:
            if self._cancelled:
                self._mark_failed(state, "Cancelled by user")
                return False
            attempts += 1
            state.retry_count = attempts - 1
            state.status = StepStatus.RETRYING if attempts > 1 else StepStatus.RUNNING
            state.start_time = time.monotonic()
            state.error_message = None

            self.logger.info(f"{'Retrying' if attempts > 1 else 'Starting'} step: {step.name} ({step.description})")
            try:
                result = step.execute()
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                result = False
                state.error_message = str(e) or type(e).__name__
                self.logger.error(f"✗ Step failed: {step.name}: {state.error_message}")

            if self._cancelled:
                self._mark_failed(state, "Cancelled by user")
                return False

            if result:
                state.status = StepStatus.COMPLETED
                state.end_time = time.monotonic()
                self._completed.add(step_name)
                self.logger.info(f"✓ Completed step: {step.name} in {state.duration * 1000:.0f}ms")
                return True

            if step.retryable and attempts < max_attempts:
                delay = self.retry.delay_for(attempts)
                self.logger.info(
                    f'Retrying step "{step.name}" in {delay * 1000:.0f}ms (attempt {attempts + 1}/{max_attempts})'
                )
                await self._sleep(delay)
                if self._cancelled:
                    self._mark_failed(state, "Cancelled by user")
                    return False

        self._mark_failed(state, state.error_message or "Step reported failure")
        self.logger.error(f"✗ Step permanently failed: {step.name} after {attempts} attempts")
        return False

    def _mark_failed(self, state: ProcessingState, message: Optional[str]) -> None:
        state.status = StepStatus.FAILED
        state.error_message = message
        state.end_time = time.monotonic()
        self._failed.add(state.step_name)

    def update_progress(self, step_name: str, current: int, total: int) -> None:
        state = self._state.get(step_name)
        if state is None:
            return
        state.progress = current
        state.total = total
        self.logger.progress(current, total, step_name)

    def get_state(self) -> Dict[str, ProcessingState]:
        """Snapshot of every step's state."""
        return {name: replace(state) for name, state in self._state.items()}

    def get_summary(self) -> Dict[str, Any]:
        summary = {'total': len(self._steps), 'completed': 0, 'failed': 0, 'pending': 0, 'running': 0}
        for state in self._state.values():
            if state.status == StepStatus.COMPLETED:
                summary['completed'] += 1
            elif state.status == StepStatus.FAILED:
                summary['failed'] += 1
            elif state.status == StepStatus.PENDING:
                summary['pending'] += 1
            else:
                summary['running'] += 1
        return summary

    def reset(self) -> None:
        """Return every step to pending for a new run."""
        self._completed.clear()
        self._failed.clear()
        self._cancelled = False
        for name in self._state:
            self._state[name] = ProcessingState(name)

    def cancel(self) -> None:
        """
        Mark in-flight steps failed and stop before the next step.

        The action currently running is not interrupted.
        """
        self._cancelled = True
        for state in self._state.values():
            if state.status in (StepStatus.RUNNING, StepStatus.RETRYING):
                self._mark_failed(state, "Cancelled by user")
