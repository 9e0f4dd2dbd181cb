import threading
import time

import pytest

from parlbm.lbm import RunContext, TwoPhaseBarrier


def _spawn(target, *args):
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


def test_barrier_rejects_zero_workers():
    with pytest.raises(ValueError):
        TwoPhaseBarrier(0)


def test_release_before_wait_is_not_lost():
    barrier = TwoPhaseBarrier(1)
    barrier.release_all()
    assert barrier.pending() == (0,)

    worker = _spawn(barrier.await_release, 0)
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert barrier.pending() == ()


def test_one_release_runs_one_cycle():
    barrier = TwoPhaseBarrier(1)
    cycles = []

    def work():
        for _ in range(2):
            barrier.await_release(0)
            cycles.append(len(cycles))
            barrier.report_done()

    worker = _spawn(work)
    barrier.release_all()
    barrier.await_all_done()
    time.sleep(0.05)

    # The second cycle waits for a second release
    assert cycles == [0]
    assert worker.is_alive()

    barrier.release_all()
    barrier.await_all_done()
    worker.join(timeout=5)
    assert cycles == [0, 1]


def test_spurious_notify_does_not_release_workers():
    barrier = TwoPhaseBarrier(2)
    released = threading.Event()

    def work():
        barrier.await_release(1)
        released.set()

    worker = _spawn(work)
    time.sleep(0.05)
    with barrier._wake_cond:
        barrier._wake_cond.notify_all()
    assert not released.wait(timeout=0.1)

    barrier.release_all()
    assert released.wait(timeout=5)
    worker.join(timeout=5)


def test_await_all_done_waits_for_every_worker():
    barrier = TwoPhaseBarrier(3)
    done = threading.Event()

    def controller():
        barrier.await_all_done()
        done.set()

    _spawn(controller)
    barrier.report_done()
    barrier.report_done()
    assert not done.wait(timeout=0.1)

    barrier.report_done()
    assert done.wait(timeout=5)


def test_many_cycles_with_shutdown():
    num_workers, num_cycles = 4, 300
    context = RunContext(num_workers)
    barrier = context.barrier
    counts = [0] * num_workers
    exits = []

    def work(tid):
        while True:
            barrier.await_release(tid)
            if not context.simulate:
                barrier.report_done()
                exits.append(tid)
                break
            counts[tid] += 1
            barrier.report_done()

    workers = [_spawn(work, tid) for tid in range(num_workers)]

    for cycle in range(num_cycles):
        barrier.release_all()
        barrier.await_all_done()
        assert counts == [cycle + 1] * num_workers

    context.simulate = False
    barrier.release_all()
    barrier.await_all_done()
    for worker in workers:
        worker.join(timeout=5)

    assert not any(w.is_alive() for w in workers)
    assert sorted(exits) == list(range(num_workers))
    assert counts == [num_cycles] * num_workers


def test_run_context_keeps_first_error():
    context = RunContext(2)
    assert context.error is None

    first = RuntimeError("first")
    context.record_error(1, first)
    context.record_error(0, RuntimeError("second"))

    assert context.error == (1, first)
    assert context.num_workers == 2
