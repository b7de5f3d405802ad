"""Session countdown and per-question timer."""
import pytest

from tryout.countdown import ACCUMULATE, CANCELLED, EXPIRED, IDLE, RESET, RUNNING, Countdown, QuestionTimer


def test_expires_after_exactly_budget_ticks(clock):
    fired = []
    countdown = Countdown(on_expire=lambda: fired.append(1), clock=clock)
    countdown.start(2 * 60)
    for _ in range(119):
        assert countdown.tick() == RUNNING
    assert countdown.remaining == 1
    assert countdown.tick() == EXPIRED
    assert countdown.remaining == 0
    assert fired == [1]


def test_extra_ticks_after_expiry_do_nothing(clock):
    fired = []
    countdown = Countdown(on_expire=lambda: fired.append(1), clock=clock)
    countdown.start(1)
    countdown.tick()
    countdown.tick()
    countdown.sync(clock.now + 50)
    assert countdown.state == EXPIRED
    assert fired == [1]


def test_sync_replays_due_ticks(clock):
    countdown = Countdown(clock=clock)
    countdown.start(60)
    clock.advance(10.7)
    assert countdown.sync() == RUNNING
    assert countdown.remaining == 50
    clock.advance(0.2)
    countdown.sync()
    assert countdown.remaining == 50
    clock.advance(100)
    assert countdown.sync() == EXPIRED
    assert countdown.expired_at == 1060.0


def test_cancel_prevents_expiry(clock):
    fired = []
    countdown = Countdown(on_expire=lambda: fired.append(1), clock=clock)
    countdown.start(3)
    countdown.cancel()
    assert countdown.state == CANCELLED
    clock.advance(10)
    assert countdown.sync() == CANCELLED
    assert countdown.tick() == CANCELLED
    assert fired == []


def test_zero_budget_expires_on_start(clock):
    fired = []
    countdown = Countdown(on_expire=lambda: fired.append(1), clock=clock)
    countdown.start(0)
    assert countdown.state == EXPIRED
    assert fired == [1]


def test_cannot_start_twice(clock):
    countdown = Countdown(clock=clock)
    assert countdown.state == IDLE
    countdown.start(10)
    with pytest.raises(RuntimeError):
        countdown.start(10)


def test_reset_policy_restarts_on_revisit(clock):
    timer = QuestionTimer(policy=RESET, clock=clock)
    timer.show(0)
    clock.advance(30)
    timer.show(1)
    clock.advance(5)
    timer.show(0)
    clock.advance(4)
    assert timer.elapsed() == 4


def test_accumulate_policy_adds_up_visits(clock):
    timer = QuestionTimer(policy=ACCUMULATE, clock=clock)
    timer.show(0)
    clock.advance(30)
    timer.show(1)
    clock.advance(5)
    timer.show(0)
    clock.advance(4)
    assert timer.elapsed() == 34


def test_showing_same_question_keeps_measurement(clock):
    timer = QuestionTimer(clock=clock)
    timer.show(2)
    clock.advance(12)
    timer.show(2)
    assert timer.elapsed() == 12


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        QuestionTimer(policy="sometimes")
