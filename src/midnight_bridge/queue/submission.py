"""Idempotent submission of state-changing contract calls."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone

from ..base import BridgeInterface
from ..constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_SLEEP_MS,
    DEFAULT_RETRY_TIMES,
    DEFAULT_TIMEOUT,
    DEFAULT_UNIQUE_FOR,
)
from ..exceptions import ContractError, MidnightError
from ..types import ContractCall, TxHash
from ..utils import mask_address, uniqueness_key
from .events import EventDispatcher, TransactionConfirmed, TransactionFailed
from .jobs import SubmissionJob, compute_backoff
from .lease import InMemoryLeaseStore, LeaseStore

logger = logging.getLogger(__name__)


class TaskQueue(ABC):
    """Delayed work queue shared by the submission workers."""

    @abstractmethod
    def enqueue(self, job: SubmissionJob, delay: float = 0.0) -> None:
        pass

    @abstractmethod
    def reserve(self, timeout: float) -> SubmissionJob | None:
        """Return the next due job, waiting up to ``timeout`` seconds."""

    @abstractmethod
    def ack(self, job: SubmissionJob) -> None:
        pass

    @abstractmethod
    def nack(self, job: SubmissionJob, delay: float) -> None:
        """Put a reserved job back, due again after ``delay`` seconds."""


class InMemoryTaskQueue(TaskQueue):
    """Thread-safe delayed queue ordered by due time."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._cond = threading.Condition()
        self._heap: list[tuple[float, int, SubmissionJob]] = []
        self._reserved: dict[str, SubmissionJob] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        with self._cond:
            return len(self._heap)

    @property
    def in_flight(self) -> int:
        with self._cond:
            return len(self._reserved)

    def enqueue(self, job: SubmissionJob, delay: float = 0.0) -> None:
        with self._cond:
            heapq.heappush(self._heap, (self._clock() + max(0.0, delay), next(self._counter), job))
            self._cond.notify()

    def reserve(self, timeout: float) -> SubmissionJob | None:
        deadline = time.monotonic() + max(0.0, timeout)
        with self._cond:
            while True:
                now = self._clock()
                if self._heap and self._heap[0][0] <= now:
                    _, _, job = heapq.heappop(self._heap)
                    self._reserved[job.job_id] = job
                    return job

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                if self._heap:
                    remaining = min(remaining, max(self._heap[0][0] - now, 0.001))
                self._cond.wait(remaining)

    def ack(self, job: SubmissionJob) -> None:
        with self._cond:
            self._reserved.pop(job.job_id, None)

    def nack(self, job: SubmissionJob, delay: float) -> None:
        with self._cond:
            self._reserved.pop(job.job_id, None)
        self.enqueue(job, delay)


class SubmissionQueue:
    """Deduplicate, enqueue and execute state-changing contract calls.

    The lease taken in :meth:`dispatch` is the single decision point for
    idempotency: while it is held, identical calls are dropped. It is released
    once the job reaches a terminal state, or expires after ``unique_for``.
    """

    def __init__(
        self,
        transport: BridgeInterface,
        *,
        lease_store: LeaseStore | None = None,
        task_queue: TaskQueue | None = None,
        events: EventDispatcher | None = None,
        max_attempts: int = DEFAULT_RETRY_TIMES,
        base_delay: float = DEFAULT_RETRY_SLEEP_MS / 1000,
        multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        backoff_schedule: list[float] | None = None,
        unique_for: int = DEFAULT_UNIQUE_FOR,
        job_timeout: float = DEFAULT_TIMEOUT * 2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._transport = transport
        self._leases = lease_store if lease_store is not None else InMemoryLeaseStore()
        self._tasks = task_queue if task_queue is not None else InMemoryTaskQueue()
        self._events = events if events is not None else EventDispatcher()
        self._max_attempts = max_attempts
        self._backoff = (
            list(backoff_schedule)
            if backoff_schedule is not None
            else compute_backoff(base_delay, multiplier, max_attempts)
        )
        self._unique_for = unique_for
        self._job_timeout = job_timeout
        self._clock = clock

        self._workers: list[threading.Thread] = []
        self._stopping = threading.Event()

        worst_case = max_attempts * job_timeout + sum(self._backoff)
        if worst_case > unique_for:
            logger.warning(
                "Submission lease (%ss) is shorter than the worst-case retry window (%.1fs); "
                "a duplicate dispatch may run while the first submission is still retrying",
                unique_for,
                worst_case,
            )

    # ---- Accessors -----------------------------------------------------------------

    @property
    def events(self) -> EventDispatcher:
        return self._events

    @property
    def task_queue(self) -> TaskQueue:
        return self._tasks

    @property
    def backoff_schedule(self) -> list[float]:
        return list(self._backoff)

    def key_for(self, contract_call: ContractCall) -> str:
        return uniqueness_key(
            contract_call.contract_address,
            contract_call.entrypoint,
            contract_call.public_args,
            contract_call.private_args,
        )

    def is_pending(self, contract_call: ContractCall) -> bool:
        return self._leases.is_held(self.key_for(contract_call))

    # ---- Dispatch ------------------------------------------------------------------

    def dispatch(self, contract_call: ContractCall) -> SubmissionJob | None:
        """Enqueue ``contract_call`` unless an identical submission is in flight.

        Returns the queued job, or None when the call was deduplicated.
        """

        if contract_call.read_only:
            raise ContractError(
                "Read-only calls cannot be submitted as transactions",
                contract_address=contract_call.contract_address,
                entrypoint=contract_call.entrypoint,
            )

        key = self.key_for(contract_call)
        job = SubmissionJob(
            contract_call=contract_call,
            uniqueness_key=key,
            max_attempts=self._max_attempts,
            backoff_schedule=list(self._backoff),
            timeout=self._job_timeout,
        )
        if not self._leases.acquire(key, self._unique_for, owner=job.job_id):
            logger.info(
                "Skipping duplicate submission for %s::%s",
                mask_address(contract_call.contract_address),
                contract_call.entrypoint,
            )
            return None

        try:
            self._tasks.enqueue(job)
        except Exception:
            self._leases.release(key, owner=job.job_id)
            raise

        logger.info(
            "Queued submission %s for %s::%s",
            job.job_id,
            mask_address(contract_call.contract_address),
            contract_call.entrypoint,
        )
        return job

    # ---- Execution -----------------------------------------------------------------

    def process(self, job: SubmissionJob) -> None:
        """Run one attempt of ``job`` and route it to confirm, retry or fail."""

        attempt = job.begin_attempt()
        call = job.contract_call
        logger.debug("Stage: submit attempt %d/%d %s", attempt, job.max_attempts, job.describe())

        started = time.monotonic()
        try:
            tx_hash = self._submit(call)
        except Exception as exc:
            self._check_duration(job, started)
            self._handle_failure(job, exc)
            return
        self._check_duration(job, started)

        job.mark_confirmed()
        logger.info(
            "Transaction %s confirmed for %s::%s after %d attempt(s)",
            tx_hash,
            mask_address(call.contract_address),
            call.entrypoint,
            job.attempts,
        )
        self._events.dispatch(
            TransactionConfirmed(
                contract_call=call,
                tx_hash=tx_hash,
                metadata={"attempts": job.attempts, "submitted_at": self._now_iso()},
            )
        )
        self._finish(job)

    def run_pending(self) -> int:
        """Process every job that is currently due on the calling thread."""
        processed = 0
        while True:
            job = self._tasks.reserve(timeout=0)
            if job is None:
                return processed
            self.process(job)
            processed += 1

    # ---- Workers -------------------------------------------------------------------

    def start(self, workers: int = 1, *, poll_interval: float = 0.5) -> None:
        if self._workers:
            raise RuntimeError("Submission workers are already running")
        self._stopping.clear()
        for index in range(max(1, workers)):
            thread = threading.Thread(
                target=self._work,
                args=(poll_interval,),
                name=f"midnight-submit-{index}",
                daemon=True,
            )
            thread.start()
            self._workers.append(thread)
        logger.info("Started %d submission worker(s)", len(self._workers))

    def stop(self, timeout: float | None = None) -> None:
        self._stopping.set()
        for thread in self._workers:
            thread.join(timeout)
        self._workers = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._workers)

    # ---- Helpers -------------------------------------------------------------------

    def _work(self, poll_interval: float) -> None:
        while not self._stopping.is_set():
            job = self._tasks.reserve(timeout=poll_interval)
            if job is not None:
                self.process(job)

    def _submit(self, call: ContractCall) -> TxHash:
        payload = call.to_payload()
        if call.requires_proof():
            logger.debug("Stage: generating proof for %s", call.entrypoint)
            proof = self._transport.generate_proof(
                call.contract_address, call.entrypoint, call.public_args, call.private_args
            )
            payload["proof"] = proof.proof
            payload["public_outputs"] = dict(proof.public_outputs)
        return self._transport.submit_transaction(payload)

    def _handle_failure(self, job: SubmissionJob, exc: Exception) -> None:
        message = exc.message if isinstance(exc, MidnightError) else str(exc)
        job.last_error = message
        call = job.contract_call

        if job.can_retry():
            delay = job.next_delay()
            logger.warning(
                "Submission attempt %d/%d for %s::%s failed (%s); retrying in %.2fs",
                job.attempts,
                job.max_attempts,
                mask_address(call.contract_address),
                call.entrypoint,
                message,
                delay,
            )
            self._tasks.nack(job, delay)
            return

        reason = f"Transaction submission failed: {message}"
        job.mark_failed(reason)
        logger.error(
            "Submission for %s::%s failed permanently after %d attempt(s): %s",
            mask_address(call.contract_address),
            call.entrypoint,
            job.attempts,
            message,
        )
        self._events.dispatch(
            TransactionFailed(
                contract_call=call,
                exception=exc,
                failure_reason=reason,
                metadata={"attempts": job.attempts, "failed_at": self._now_iso()},
            )
        )
        self._finish(job)

    def _finish(self, job: SubmissionJob) -> None:
        if not self._leases.release(job.uniqueness_key, owner=job.job_id):
            logger.warning(
                "Lease for job %s had already expired or passed to another submission",
                job.job_id,
            )
        self._tasks.ack(job)

    def _check_duration(self, job: SubmissionJob, started: float) -> None:
        elapsed = time.monotonic() - started
        if elapsed > job.timeout:
            logger.warning(
                "Submission attempt for job %s took %.1fs, over its %.1fs budget",
                job.job_id,
                elapsed,
                job.timeout,
            )

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
