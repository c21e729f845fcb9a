"""Reassertion scheduler — single-flight, debounced settings apply cycles.

All reconciliation state lives on one dedicated thread. Other threads only
post messages into its mailbox: a "facts changed" notification is a single
``put`` and returns immediately. The OS apply and rebind calls run on a
worker pool and post their outcome back to the mailbox, so the state
machine and the last-applied snapshot are only ever touched by the
reconciler thread.

States:
    IDLE -> APPLYING on a facts-changed signal or an explicit reassert().
    APPLYING -> APPLYING_WITH_PENDING_RETRY on a signal while the OS
    apply is in flight (signals during the debounce window are absorbed,
    since recomputation has not happened yet).
    On completion, a pending retry starts a new cycle; otherwise IDLE.
"""

from __future__ import annotations

import concurrent.futures
import enum
import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from tunnelsync.errors import (
    ApplyFailed,
    NotReady,
    RebindFailed,
    StillInProgress,
    TunnelSyncError,
)
from tunnelsync.tunnel.models import DesiredSettings
from tunnelsync.tunnel.snapshot import (
    SettingsSnapshot,
    equivalent,
    needs_interface_rebind,
    snapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.5


class ReconciliationState(enum.Enum):
    IDLE = "idle"
    APPLYING = "applying"
    APPLYING_WITH_PENDING_RETRY = "applying-with-pending-retry"


class CycleOutcome(enum.Enum):
    """How an apply cycle ended."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    NOT_READY = "not_ready"
    FAILED = "failed"


@dataclass(frozen=True)
class CycleResult:
    outcome: CycleOutcome
    snapshot: SettingsSnapshot | None = None
    rebound: bool = False
    error: TunnelSyncError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (CycleOutcome.APPLIED, CycleOutcome.UNCHANGED)


# --- Mailbox messages ---


class _FactsChanged:
    pass


@dataclass
class _Reassert:
    future: Future[CycleResult]


@dataclass
class _ApplyDone:
    result: CycleResult


@dataclass
class _Query:
    future: Future[SettingsSnapshot | None]


@dataclass
class _Barrier:
    future: Future[None]


class _Stop:
    pass


_FACTS_CHANGED = _FactsChanged()
_STOP = _Stop()


class ReassertionScheduler:
    """Coalesces fact-change signals into serialized settings apply cycles."""

    def __init__(
        self,
        compute: Callable[[], DesiredSettings],
        apply: Callable[[DesiredSettings], None],
        rebind: Callable[[], None],
        on_failure: Callable[[TunnelSyncError], None] | None = None,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        self._compute = compute
        self._apply = apply
        self._rebind = rebind
        self._on_failure = on_failure
        self._debounce = debounce
        self._mailbox: queue.Queue[object] = queue.Queue()
        self._executor: ThreadPoolExecutor | None = None
        self._thread: threading.Thread | None = None

        # --- Reconciler-thread only ---
        self._state = ReconciliationState.IDLE
        self._deadline: float | None = None
        self._last_applied: SettingsSnapshot | None = None
        self._cycle_future: Future[CycleResult] | None = None
        self._barriers: list[Future[None]] = []

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Spawn the reconciler thread."""
        if self.is_running:
            return
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tunnelsync-apply")
        self._thread = threading.Thread(
            target=self._run, name="tunnelsync-reconciler", daemon=True
        )
        self._thread.start()
        logger.debug("Reassertion scheduler started (debounce %.2fs)", self._debounce)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop accepting work. An in-flight OS call is left to finish on its own."""
        if self._thread is None:
            return
        self._mailbox.put(_STOP)
        self._thread.join(timeout=timeout)
        self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def notify_facts_changed(self) -> None:
        """Signal that facts changed. Safe from any thread; never blocks."""
        self._mailbox.put(_FACTS_CHANGED)

    def reassert(self) -> Future[CycleResult]:
        """Force a new cycle.

        The returned future fails with StillInProgress if a cycle is
        already running, otherwise resolves with the cycle's result.
        """
        self._require_running()
        future: Future[CycleResult] = Future()
        self._mailbox.put(_Reassert(future))
        return future

    def last_applied(self, timeout: float | None = 5.0) -> SettingsSnapshot | None:
        """Return the last successfully applied snapshot.

        Must not be called from the reconciler thread itself.
        """
        self._require_running()
        future: Future[SettingsSnapshot | None] = Future()
        self._mailbox.put(_Query(future))
        return future.result(timeout=timeout)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until every signal posted so far has been fully processed."""
        self._require_running()
        future: Future[None] = Future()
        self._mailbox.put(_Barrier(future))
        try:
            future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            return False
        return True

    def _require_running(self) -> None:
        if not self.is_running:
            raise RuntimeError("Scheduler not started — call start() first")

    # --- Reconciler thread ---

    def _run(self) -> None:
        while True:
            timeout = None
            if self._deadline is not None:
                timeout = max(0.0, self._deadline - time.monotonic())
            try:
                msg = self._mailbox.get(timeout=timeout)
            except queue.Empty:
                msg = None

            if msg is _STOP:
                self._abandon()
                return
            if msg is not None:
                self._dispatch(msg)

            if self._deadline is not None and time.monotonic() >= self._deadline:
                self._deadline = None
                self._recompute()

    def _dispatch(self, msg: object) -> None:
        if isinstance(msg, _FactsChanged):
            self._on_facts_changed()
        elif isinstance(msg, _Reassert):
            if self._state is not ReconciliationState.IDLE:
                msg.future.set_exception(StillInProgress())
                return
            self._begin_cycle(msg.future)
        elif isinstance(msg, _ApplyDone):
            self._finish_cycle(msg.result)
        elif isinstance(msg, _Query):
            msg.future.set_result(self._last_applied)
        elif isinstance(msg, _Barrier):
            if self._state is ReconciliationState.IDLE:
                msg.future.set_result(None)
            else:
                self._barriers.append(msg.future)

    def _on_facts_changed(self) -> None:
        if self._state is ReconciliationState.IDLE:
            logger.info("Facts changed, starting apply cycle")
            self._begin_cycle(None)
        elif self._deadline is not None:
            logger.debug("Facts changed during debounce window, coalesced")
        elif self._state is ReconciliationState.APPLYING:
            logger.debug("Facts changed during apply, queueing one retry")
            self._state = ReconciliationState.APPLYING_WITH_PENDING_RETRY

    def _begin_cycle(self, future: Future[CycleResult] | None) -> None:
        self._state = ReconciliationState.APPLYING
        self._cycle_future = future
        self._deadline = time.monotonic() + self._debounce

    def _recompute(self) -> None:
        try:
            settings = self._compute()
        except NotReady as exc:
            logger.warning("Skipping apply cycle: %s", exc)
            self._finish_cycle(CycleResult(CycleOutcome.NOT_READY, error=exc))
            return
        except TunnelSyncError as exc:
            logger.error("Failed to build network settings: %s", exc)
            self._finish_cycle(CycleResult(CycleOutcome.FAILED, error=exc))
            return
        except Exception as exc:
            logger.error("Failed to build network settings: %s", exc)
            self._finish_cycle(CycleResult(CycleOutcome.FAILED, error=ApplyFailed(str(exc))))
            return

        new = snapshot(settings)
        if equivalent(new, self._last_applied):
            logger.info("Network settings unchanged, skipping apply")
            self._finish_cycle(CycleResult(CycleOutcome.UNCHANGED, snapshot=new))
            return

        rebind = needs_interface_rebind(self._last_applied, new)
        executor = self._executor
        if executor is None:
            return
        executor.submit(self._apply_off_context, settings, new, rebind)

    def _apply_off_context(
        self,
        settings: DesiredSettings,
        new: SettingsSnapshot,
        rebind: bool,
    ) -> None:
        # Runs on the worker pool; only posts back to the mailbox
        try:
            self._apply(settings)
        except ApplyFailed as exc:
            result = CycleResult(CycleOutcome.FAILED, snapshot=new, error=exc)
        except Exception as exc:
            result = CycleResult(CycleOutcome.FAILED, snapshot=new, error=ApplyFailed(str(exc)))
        else:
            result = CycleResult(CycleOutcome.APPLIED, snapshot=new, rebound=rebind)
            if rebind:
                try:
                    self._rebind()
                except RebindFailed as exc:
                    result = CycleResult(CycleOutcome.FAILED, snapshot=new, error=exc)
                except Exception as exc:
                    result = CycleResult(
                        CycleOutcome.FAILED, snapshot=new, error=RebindFailed(str(exc))
                    )
        self._mailbox.put(_ApplyDone(result))

    def _finish_cycle(self, result: CycleResult) -> None:
        if result.outcome is CycleOutcome.APPLIED:
            self._last_applied = result.snapshot
            logger.info("Updated tunnel settings (rebound=%s)", result.rebound)
        elif result.outcome is CycleOutcome.FAILED and result.error is not None:
            logger.error("Apply cycle failed: %s", result.error)
            if self._on_failure is not None:
                try:
                    self._on_failure(result.error)
                except Exception:
                    logger.exception("Failure handler raised")

        if self._cycle_future is not None:
            self._cycle_future.set_result(result)
            self._cycle_future = None

        if self._state is ReconciliationState.APPLYING_WITH_PENDING_RETRY:
            logger.info("Running queued retry with latest facts")
            self._begin_cycle(None)
            return

        self._state = ReconciliationState.IDLE
        barriers, self._barriers = self._barriers, []
        for barrier in barriers:
            barrier.set_result(None)

    def _abandon(self) -> None:
        state = self._state
        stopped = TunnelSyncError("Scheduler stopped")
        if self._cycle_future is not None and not self._cycle_future.done():
            self._cycle_future.set_exception(stopped)
        for barrier in self._barriers:
            barrier.set_exception(stopped)
        self._barriers = []
        self._deadline = None
        self._state = ReconciliationState.IDLE
        logger.debug("Reassertion scheduler stopped in state %s", state.value)
