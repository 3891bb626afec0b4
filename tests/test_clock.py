import asyncio
import logging

import pytest

import beatgrid.clock


def _offline (bpm: float = 120) -> beatgrid.clock.TransportClock:

	"""Create an offline clock."""

	return beatgrid.clock.TransportClock(initial_bpm=bpm, realtime=False)


def test_interval_for_sixteenth_notes () -> None:

	clock = _offline(120)

	assert clock.interval(6) == 0.125
	assert clock.interval(24) == 0.5


def test_time_is_zero_while_stopped () -> None:

	clock = _offline()

	assert clock.time() == 0.0

	clock.start()
	clock.run_until(0.3)

	assert clock.time() == pytest.approx(0.3)

	clock.stop()

	assert clock.time() == 0.0


def test_ticks_carry_scheduled_times () -> None:

	"""Callbacks receive the tick's scheduled time, not the time they ran."""

	clock = _offline(120)
	times: list[float] = []

	clock.schedule_repeating(6, times.append)
	clock.start()

	fired = clock.run_until(0.5)

	assert fired == 5
	assert times == [0.0, 0.125, 0.25, 0.375, 0.5]


def test_advance_moves_time_forward () -> None:

	clock = _offline(120)
	times: list[float] = []

	clock.schedule_repeating(6, times.append)
	clock.start()

	assert clock.advance(0.1) == 1
	assert clock.advance(0.1) == 1
	assert times == [0.0, 0.125]


def test_late_catch_up_fires_every_missed_tick_in_order () -> None:

	clock = _offline(120)
	times: list[float] = []

	clock.schedule_repeating(6, times.append)
	clock.start()
	clock.run_until(1.0)

	assert times == [i * 0.125 for i in range(9)]


def test_set_rate_anchors_at_last_fired_tick () -> None:

	"""After a tempo change the next tick is one new interval after the last tick."""

	clock = _offline(60)
	times: list[float] = []

	subscription = clock.schedule_repeating(6, times.append)
	clock.start()
	clock.run_until(0.25)

	assert times == [0.0, 0.25]

	clock.set_rate(180)

	assert subscription.next_fire_time == pytest.approx(0.25 + 1 / 12)

	clock.run_until(0.45)

	assert times == pytest.approx([0.0, 0.25, 0.25 + 1 / 12, 0.25 + 2 / 12])
	assert len(set(times)) == len(times)


def test_set_rate_keeps_anchor_of_unfired_subscription () -> None:

	clock = _offline(120)
	subscription = clock.schedule_repeating(6, lambda t: None)
	clock.start()

	clock.set_rate(90)

	assert subscription.next_fire_time == 0.0
	assert subscription.last_fire_time is None


def test_cancel_stops_further_ticks () -> None:

	clock = _offline(120)
	times: list[float] = []

	subscription = clock.schedule_repeating(6, times.append)
	clock.start()
	clock.run_until(0.125)
	clock.cancel(subscription)

	assert clock.run_until(1.0) == 0
	assert times == [0.0, 0.125]
	assert subscription.active is False
	assert clock.subscriptions == ()


def test_cancel_twice_raises () -> None:

	clock = _offline()
	subscription = clock.schedule_repeating(6, lambda t: None)
	clock.cancel(subscription)

	with pytest.raises(ValueError):
		clock.cancel(subscription)


def test_stop_inside_callback_halts_firing () -> None:

	clock = _offline(120)
	times: list[float] = []

	def on_tick (t: float) -> None:
		times.append(t)
		if len(times) == 2:
			clock.stop()

	clock.schedule_repeating(6, on_tick)
	clock.start()

	assert clock.run_until(1.0) == 2
	assert times == [0.0, 0.125]


def test_callback_errors_are_logged (caplog: pytest.LogCaptureFixture) -> None:

	"""A failing callback is logged and the clock keeps ticking."""

	clock = _offline(120)
	times: list[float] = []

	def broken (t: float) -> None:
		raise RuntimeError("boom")

	clock.schedule_repeating(6, broken)
	clock.schedule_repeating(6, times.append)
	clock.start()

	with caplog.at_level(logging.ERROR, logger="beatgrid.clock"):
		clock.run_until(0.25)

	assert times == [0.0, 0.125, 0.25]
	assert "failed" in caplog.text


def test_invalid_arguments () -> None:

	clock = _offline()

	with pytest.raises(ValueError):
		clock.set_rate(0)

	with pytest.raises(ValueError):
		clock.schedule_repeating(0, lambda t: None)

	clock.start()

	clock.run_until(0.5)

	with pytest.raises(ValueError):
		clock.run_until(0.25)


def test_run_until_requires_offline_clock () -> None:

	clock = beatgrid.clock.TransportClock(realtime=True)

	with pytest.raises(RuntimeError):
		clock.run_until(1.0)


@pytest.mark.asyncio
async def test_realtime_clock_fires_on_schedule () -> None:

	"""A realtime clock fires on its own and stops firing once stopped."""

	clock = beatgrid.clock.TransportClock(initial_bpm=600, realtime=True, spin_wait=False)
	times: list[float] = []

	clock.schedule_repeating(6, times.append)
	clock.start()

	await asyncio.sleep(0.2)
	clock.stop()

	count = len(times)

	assert count >= 3
	assert times == pytest.approx([i * 0.025 for i in range(count)])

	await asyncio.sleep(0.1)

	assert len(times) == count
