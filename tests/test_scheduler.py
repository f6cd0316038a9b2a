from adtap.monitor.scheduler import ManualScheduler, RetryState, RetryTask


def test_calls_run_in_due_order():
    scheduler = ManualScheduler()
    order = []
    scheduler.call_later(300, lambda: order.append("c"))
    scheduler.call_later(100, lambda: order.append("a"))
    scheduler.call_later(200, lambda: order.append("b"))

    scheduler.advance(250)
    assert order == ["a", "b"]
    assert scheduler.now() == 250

    scheduler.advance(100)
    assert order == ["a", "b", "c"]


def test_cancelled_call_never_runs():
    scheduler = ManualScheduler()
    ran = []
    handle = scheduler.call_later(10, lambda: ran.append(1))
    handle.cancel()
    scheduler.advance(20)
    assert ran == []
    assert scheduler.pending == 0


def test_failing_callback_is_contained():
    scheduler = ManualScheduler()
    ran = []
    scheduler.call_later(10, lambda: 1 / 0)
    scheduler.call_later(20, lambda: ran.append(1))
    scheduler.advance(30)
    assert ran == [1]


class TestRetryTask:
    def test_found_stops_polling(self):
        scheduler = ManualScheduler()
        hits = iter([False, False, True])
        task = RetryTask(scheduler, lambda: next(hits), 200, 20).start()

        scheduler.advance(1000)
        assert task.state == RetryState.FOUND
        assert task.attempts == 3

    def test_exhausted_after_max_attempts(self):
        scheduler = ManualScheduler()
        exhausted = []
        task = RetryTask(scheduler, lambda: False, 200, 20, on_exhausted=lambda: exhausted.append(True)).start()

        scheduler.advance(200 * 18)
        assert task.state == RetryState.PENDING
        scheduler.advance(200)
        assert task.state == RetryState.EXHAUSTED
        assert task.attempts == 20
        assert exhausted == [True]

    def test_cancel(self):
        scheduler = ManualScheduler()
        task = RetryTask(scheduler, lambda: False, 100, 5).start()
        task.cancel()
        scheduler.advance(1000)
        assert task.state == RetryState.CANCELLED
        assert task.attempts == 1
