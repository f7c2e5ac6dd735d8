"""
One verification request, start to finish.

    idle -> detecting -> (no_face | fetching) -> matching -> (persisting) -> done | failed

Every external call runs in a worker thread with a timeout and is awaited
one after another: the match needs the full candidate set, and the append
only happens after a no_match decision.

VerificationCoordinator owns one status surface (one browser client) and
makes sure only the latest request's outcome is ever applied.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from faceverify.errors import (
    FaceVerifyError,
    ProviderUnavailable,
    StoreReadFailure,
    StoreWriteFailure,
)
from faceverify.models import MatchOutcome, VerificationResult
from faceverify.services.face_service import EmbeddingProvider
from faceverify.services.face_store import FaceStore
from faceverify.services.matcher import find_match

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, Callable[[], Awaitable[bytes]]]


class WorkflowState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    NO_FACE = "no_face"
    FETCHING = "fetching"
    MATCHING = "matching"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = {WorkflowState.NO_FACE, WorkflowState.DONE, WorkflowState.FAILED}


class Superseded(Exception):
    """A newer request from the same client replaced this one."""

    def __init__(self, generation: int) -> None:
        super().__init__(f"request {generation} was superseded by a newer request")
        self.generation = generation


class VerificationWorkflow:
    def __init__(
        self,
        provider: EmbeddingProvider,
        store: FaceStore,
        threshold: float,
        strategy: str = "first",
        timeout: Optional[float] = 10.0,
        is_current: Callable[[], bool] = lambda: True,
        generation: int = 0,
    ) -> None:
        self.provider = provider
        self.store = store
        self.threshold = threshold
        self.strategy = strategy
        self.timeout = timeout
        self.is_current = is_current
        self.generation = generation
        self.state = WorkflowState.IDLE
        self.history: list[WorkflowState] = [WorkflowState.IDLE]
        self.result: Optional[VerificationResult] = None
        self.pending_write: Optional[asyncio.Future] = None

    def _transition(self, state: WorkflowState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"workflow already finished in state {self.state.value}")
        logger.debug("[workflow %d] %s -> %s", self.generation, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    async def _call(self, failure: type[FaceVerifyError], fn, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise failure(f"{getattr(fn, '__name__', 'call')} timed out after {self.timeout}s") from exc

    def _finish(self, state: WorkflowState, result: VerificationResult) -> VerificationResult:
        self._transition(state)
        self.result = result
        logger.info(
            "[workflow %d] %s (%s)",
            self.generation,
            result.status,
            result.error_kind or result.warning or "ok",
        )
        return result

    async def run(self, image: ImageSource) -> VerificationResult:
        if self.state is not WorkflowState.IDLE:
            raise RuntimeError("a workflow runs once; create a new one per image")
        try:
            if callable(image):
                image = await image()
            return await self._run(image)
        except Superseded:
            raise
        except FaceVerifyError as exc:
            logger.warning("[workflow %d] failed: %s: %s", self.generation, exc.kind, exc.detail)
            return self._finish(
                WorkflowState.FAILED,
                VerificationResult.for_status("error", message=exc.message, error_kind=exc.kind),
            )
        except Exception:
            logger.exception("[workflow %d] unexpected error", self.generation)
            return self._finish(
                WorkflowState.FAILED,
                VerificationResult.for_status("error", error_kind="internal_error"),
            )

    async def _run(self, image_bytes: bytes) -> VerificationResult:
        self._transition(WorkflowState.DETECTING)
        query = await self._call(ProviderUnavailable, self.provider.detect, image_bytes)
        if query is None:
            return self._finish(WorkflowState.NO_FACE, VerificationResult.for_status("no_face_detected"))

        self._transition(WorkflowState.FETCHING)
        candidates = await self._call(StoreReadFailure, self.store.list_all)

        self._transition(WorkflowState.MATCHING)
        decision = find_match(query, candidates, self.threshold, strategy=self.strategy)
        logger.debug(
            "[workflow %d] %s against %d candidates (distance=%s)",
            self.generation,
            decision.outcome.value,
            len(candidates),
            decision.distance,
        )

        if decision.outcome is MatchOutcome.MATCHED:
            return self._finish(
                WorkflowState.DONE,
                VerificationResult.for_status(
                    "matched",
                    distance=decision.distance,
                    candidate_count=len(candidates),
                ),
            )

        if not self.is_current():
            raise Superseded(self.generation)

        self._transition(WorkflowState.PERSISTING)
        warning = None
        # A started insert always completes, even if this request is superseded.
        self.pending_write = asyncio.ensure_future(
            self._call(StoreWriteFailure, self.store.append, query)
        )
        try:
            await asyncio.shield(self.pending_write)
        except StoreWriteFailure as exc:
            # The no_match decision stands; only the insert is lost.
            logger.warning("[workflow %d] failed to persist: %s", self.generation, exc.detail)
            warning = "Failed to persist new face"

        return self._finish(
            WorkflowState.DONE,
            VerificationResult.for_status(
                "no_match",
                warning=warning,
                distance=decision.distance,
                candidate_count=len(candidates),
            ),
        )


WorkflowFactory = Callable[[Callable[[], bool], int], VerificationWorkflow]


class VerificationCoordinator:
    """Runs workflows for one client; a new submission cancels the one in flight."""

    def __init__(self, workflow_factory: WorkflowFactory) -> None:
        self.workflow_factory = workflow_factory
        self.generation = 0
        self.result = VerificationResult.for_status("idle")
        self._task: Optional[asyncio.Task] = None
        self._workflow: Optional[VerificationWorkflow] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    async def submit(self, image: ImageSource) -> VerificationResult:
        self.generation += 1
        generation = self.generation

        if self.busy:
            logger.info("[coordinator] cancelling request %d for request %d", generation - 1, generation)
            self._task.cancel()

        self.result = VerificationResult.for_status("processing")
        task = asyncio.create_task(self._run(generation, image, self._workflow))
        self._task = task

        try:
            return await task
        except asyncio.CancelledError:
            if self.generation != generation:
                raise Superseded(generation)
            # The caller itself went away; stop the work it started.
            task.cancel()
            raise

    async def _run(
        self,
        generation: int,
        image: ImageSource,
        previous: Optional[VerificationWorkflow],
    ) -> VerificationResult:
        workflow = self.workflow_factory(lambda: self.generation == generation, generation)
        self._workflow = workflow
        # Fetch only after an insert from the request we replaced has landed.
        if previous is not None and previous.pending_write is not None:
            await asyncio.wait([previous.pending_write])
        result = await workflow.run(image)
        if self.generation != generation:
            raise Superseded(generation)
        self.result = result
        return result


class CoordinatorRegistry:
    """One coordinator per browser client id, least recently used evicted first."""

    def __init__(self, workflow_factory: WorkflowFactory, max_clients: int = 1024) -> None:
        self.workflow_factory = workflow_factory
        self.max_clients = max_clients
        self._coordinators: OrderedDict[str, VerificationCoordinator] = OrderedDict()

    def __len__(self) -> int:
        return len(self._coordinators)

    def get(self, client_id: str) -> VerificationCoordinator:
        coordinator = self._coordinators.get(client_id)
        if coordinator is None:
            coordinator = VerificationCoordinator(self.workflow_factory)
            self._coordinators[client_id] = coordinator
            self._evict()
        else:
            self._coordinators.move_to_end(client_id)
        return coordinator

    def peek(self, client_id: str) -> Optional[VerificationCoordinator]:
        return self._coordinators.get(client_id)

    def _evict(self) -> None:
        while len(self._coordinators) > self.max_clients:
            client_id, coordinator = next(iter(self._coordinators.items()))
            if coordinator.busy:
                break
            del self._coordinators[client_id]
