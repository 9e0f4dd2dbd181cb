"""Synchronization between the simulation controller and its workers.

The controller releases every worker at once, then waits for all of them to report
that their share of the step is done. The two phases use independent conditions, and
every wait re-checks its predicate, so spurious wakeups are harmless and a release
issued before a worker starts waiting is not lost.
"""

import threading
from typing import List, Optional, Tuple

__all__ = ["TwoPhaseBarrier", "RunContext"]


class TwoPhaseBarrier:
    def __init__(self, num_workers: int):
        if num_workers < 1:
            raise ValueError(f"num_workers must be at least 1, but got {num_workers}.")
        self.num_workers = num_workers

        self._wake_lock = threading.Lock()
        self._wake_cond = threading.Condition(self._wake_lock)
        self._wakeup: List[bool] = [False] * num_workers

        self._done_lock = threading.Lock()
        self._done_cond = threading.Condition(self._done_lock)
        self._processed = 0

    def release_all(self) -> None:
        """Wake up every worker for one cycle."""
        with self._wake_cond:
            for tid in range(self.num_workers):
                self._wakeup[tid] = True
            self._wake_cond.notify_all()

    def await_release(self, tid: int) -> None:
        """Block the worker `tid` until it is released, and consume the release."""
        with self._wake_cond:
            self._wake_cond.wait_for(lambda: self._wakeup[tid])
            self._wakeup[tid] = False

    def report_done(self) -> None:
        """Called by a worker once its share of the cycle is done."""
        with self._done_cond:
            self._processed += 1
            self._done_cond.notify()

    def await_all_done(self) -> None:
        """Block the controller until every worker reported, and reset the count."""
        with self._done_cond:
            self._done_cond.wait_for(lambda: self._processed == self.num_workers)
            self._processed = 0

    def pending(self) -> Tuple[int, ...]:
        """Returns the workers holding a release they have not consumed yet."""
        with self._wake_lock:
            return tuple(tid for tid, flag in enumerate(self._wakeup) if flag)


class RunContext:
    """Run-control state shared by the controller and the workers of one run.

    ``simulate`` is only changed by the controller while the workers are parked,
    so every worker observes the same value during a cycle.
    """

    def __init__(self, num_workers: int):
        self.barrier = TwoPhaseBarrier(num_workers)
        self.simulate = True
        self._error_lock = threading.Lock()
        self._error: Optional[Tuple[int, BaseException]] = None

    @property
    def num_workers(self) -> int:
        return self.barrier.num_workers

    def record_error(self, tid: int, error: BaseException) -> None:
        # Only the first failure is kept.
        with self._error_lock:
            if self._error is None:
                self._error = (tid, error)

    @property
    def error(self) -> Optional[Tuple[int, BaseException]]:
        with self._error_lock:
            return self._error
