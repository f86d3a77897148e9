import pytest

from cbt_session.engine.clock import SessionClock, format_remaining
from cbt_session.engine.scheduler import ManualScheduler


@pytest.fixture
def clock(scheduler):
    return SessionClock(scheduler)


def test_ninety_second_section_expires_exactly_once(clock, scheduler):
    fired = []
    clock.on_expire(lambda: fired.append(scheduler.now()))
    clock.start(90)

    for _ in range(91):
        scheduler.advance(1)

    assert fired == [1090.0]
    assert clock.expired
    assert clock.remaining_seconds == 0
    assert not clock.running


def test_remaining_is_reconstructed_from_start_timestamp(scheduler):
    first = SessionClock(scheduler)
    first.start(600, started_at=scheduler.now())
    scheduler.advance(125)
    first.stop()

    # 새로고침: 클라이언트 카운트다운 없이 서버 기록만으로 다시 계산
    reloaded = SessionClock(scheduler)
    reloaded.start(600, started_at=1000.0)
    assert reloaded.remaining_seconds == 600 - 125


def test_remaining_never_negative(clock, scheduler):
    clock.start(60, started_at=scheduler.now() - 3600)
    assert clock.remaining_seconds == 0
    assert clock.state().remaining_seconds == 0


def test_already_elapsed_section_expires_on_next_turn(clock, scheduler):
    fired = []
    clock.on_expire(lambda: fired.append(True))
    clock.start(60, started_at=scheduler.now() - 61)
    assert fired == []

    scheduler.advance(0)
    assert fired == [True]
    scheduler.advance(10)
    assert fired == [True]


def test_ticks_are_monotonic_non_increasing(clock, scheduler):
    seen = []
    clock.on_tick(seen.append)
    clock.start(5)
    scheduler.advance(10)

    assert seen == [4, 3, 2, 1, 0]
    assert seen == sorted(seen, reverse=True)


def test_pause_freezes_and_resume_continues(clock, scheduler):
    clock.start(30)
    scheduler.advance(10)
    clock.pause()
    assert not clock.running

    scheduler.advance(100)
    assert clock.remaining_seconds == 20
    assert not clock.expired

    clock.resume()
    scheduler.advance(5)
    assert clock.remaining_seconds == 15
    assert clock.state().running


def test_restart_rearms_expiry(clock, scheduler):
    fired = []
    clock.on_expire(lambda: fired.append(True))
    clock.start(2)
    scheduler.advance(3)
    clock.start(2)
    assert not clock.expired
    scheduler.advance(3)
    assert fired == [True, True]


def test_wall_clock_jump_backwards_does_not_add_time():
    scheduler = ManualScheduler(start=500.0)
    clock = SessionClock(scheduler)
    clock.start(100)
    scheduler.advance(40)
    assert clock.remaining_seconds == 60

    scheduler._now -= 30
    clock._tick()
    assert clock.remaining_seconds == 60


def test_format_remaining_and_warning(clock):
    assert format_remaining(1920) == "32:00"
    assert format_remaining(61.2) == "01:02"
    assert format_remaining(-5) == "00:00"

    clock.start(900)
    assert not clock.is_warning
    clock.start(599)
    assert clock.is_warning
