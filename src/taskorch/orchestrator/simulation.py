"""Concurrent worker simulation that drives tasks through the lifecycle.

Workers only record transitions; nothing is executed. The point is to put
real thread contention on ``claim`` and watch the conflict and dependency
gates from the command line.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field

from taskorch.orchestrator.models import ClaimFailure, Task
from taskorch.orchestrator.service import TaskOrchestrator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    conflicts: int = 0
    lost_races: int = 0
    idle_polls: int = 0

    def merge(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.conflicts += other.conflicts
        self.lost_races += other.lost_races
        self.idle_polls += other.idle_polls


@dataclass(slots=True)
class SimulationSummary:
    """Totals across all simulated workers."""

    workers: int
    totals: WorkerRunSummary
    per_worker: dict[str, WorkerRunSummary] = field(default_factory=dict)


class SimulatedWorker:
    """Polls ``list_ready`` and walks each claimed task to a terminal status."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        orchestrator: TaskOrchestrator,
        worker_id: str,
        capabilities: frozenset[str],
        failure_rate: float = 0.0,
        poll_interval_seconds: float = 0.01,
        rng: random.Random | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.worker_id = worker_id
        self.capabilities = capabilities
        self.failure_rate = failure_rate
        self.poll_interval_seconds = poll_interval_seconds
        self._random = rng or random.Random()  # noqa: S311
        self._stop = stop_event or threading.Event()

    def run_once(self) -> WorkerRunSummary:
        """Claim and finish at most one task."""

        summary = WorkerRunSummary()
        task = self._claim_next(summary)
        if task is None:
            summary.idle_polls = 1
            return summary

        self.orchestrator.start(task.task_id)
        success = self._random.random() >= self.failure_rate
        self.orchestrator.complete(task.task_id, success=success)
        summary.processed = 1
        if success:
            summary.succeeded = 1
        else:
            summary.failed = 1
        return summary

    def run_loop(self, *, max_idle_polls: int = 3) -> WorkerRunSummary:
        """Run until ``max_idle_polls`` consecutive polls find nothing claimable."""

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        while not self._stop.is_set():
            summary = self.run_once()
            aggregate.merge(summary)
            if summary.processed == 0:
                consecutive_idle += 1
                if consecutive_idle >= max_idle_polls:
                    break
                self._stop.wait(timeout=self.poll_interval_seconds)
                continue
            consecutive_idle = 0
        logger.info(
            "Worker %s finished: processed=%d idle_polls=%d",
            self.worker_id,
            aggregate.processed,
            aggregate.idle_polls,
        )
        return aggregate

    def _claim_next(self, summary: WorkerRunSummary) -> Task | None:
        for candidate in self.orchestrator.list_ready(self.worker_id, self.capabilities):
            result = self.orchestrator.claim(self.worker_id, candidate.task_id)
            if result.success:
                return result.task
            if result.failure == ClaimFailure.CONFLICT:
                summary.conflicts += 1
            elif result.failure == ClaimFailure.NOT_PENDING:
                summary.lost_races += 1
        return None


class WorkerSimulation:
    """Runs several ``SimulatedWorker`` threads against one orchestrator."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        orchestrator: TaskOrchestrator,
        workers: int,
        capabilities: tuple[str, ...] = (),
        failure_rate: float = 0.0,
        max_idle_polls: int = 3,
        poll_interval_seconds: float = 0.01,
        seed: int | None = None,
    ) -> None:
        if workers <= 0:
            raise ValueError("workers must be a positive integer")
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0.0 and 1.0")
        self.orchestrator = orchestrator
        self.worker_ids = [f"worker-{index + 1}" for index in range(workers)]
        self.capabilities = frozenset(capabilities)
        self.failure_rate = failure_rate
        self.max_idle_polls = max_idle_polls
        self.poll_interval_seconds = poll_interval_seconds
        self.seed = seed
        self._stop = threading.Event()

    def run(self) -> SimulationSummary:
        results: dict[str, WorkerRunSummary] = {}
        errors: list[Exception] = []
        results_lock = threading.Lock()

        def _target(worker: SimulatedWorker) -> None:
            try:
                summary = worker.run_loop(max_idle_polls=self.max_idle_polls)
            except Exception as error:  # noqa: BLE001
                logger.exception("Worker %s aborted", worker.worker_id)
                self._stop.set()
                with results_lock:
                    errors.append(error)
                return
            with results_lock:
                results[worker.worker_id] = summary

        threads = [
            threading.Thread(
                target=_target,
                args=(self._build_worker(worker_id),),
                name=f"taskorch-{worker_id}",
                daemon=True,
            )
            for worker_id in self.worker_ids
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        if errors:
            raise RuntimeError("Worker simulation aborted") from errors[0]

        totals = WorkerRunSummary()
        for worker_id in self.worker_ids:
            totals.merge(results[worker_id])
        return SimulationSummary(
            workers=len(self.worker_ids),
            totals=totals,
            per_worker={worker_id: results[worker_id] for worker_id in self.worker_ids},
        )

    def _build_worker(self, worker_id: str) -> SimulatedWorker:
        rng = None
        if self.seed is not None:
            rng = random.Random(f"{self.seed}:{worker_id}")  # noqa: S311
        return SimulatedWorker(
            orchestrator=self.orchestrator,
            worker_id=worker_id,
            capabilities=self.capabilities,
            failure_rate=self.failure_rate,
            poll_interval_seconds=self.poll_interval_seconds,
            rng=rng,
            stop_event=self._stop,
        )
