import asyncio
import logging

import pytest

import beatgrid.event_emitter


def test_on_and_emit_sync () -> None:

	"""Registered sync callbacks are called on emit_sync."""

	emitter = beatgrid.event_emitter.EventEmitter()
	received: list[int] = []

	emitter.on("step", lambda v: received.append(v))
	emitter.emit_sync("step", 3)

	assert received == [3]
	assert emitter.listener_count("step") == 1
	assert emitter.listener_count("stop") == 0


def test_off_removes_callback () -> None:

	"""off() prevents a previously registered callback from being called."""

	emitter = beatgrid.event_emitter.EventEmitter()
	received: list[int] = []

	def cb (v: int) -> None:
		received.append(v)

	emitter.on("step", cb)
	emitter.off("step", cb)
	emitter.emit_sync("step", 1)

	assert received == []


def test_off_raises_for_unregistered_callback () -> None:

	"""off() raises ValueError when the callback was never registered."""

	emitter = beatgrid.event_emitter.EventEmitter()

	with pytest.raises(ValueError, match="step"):
		emitter.off("step", lambda: None)


def test_failing_listener_does_not_stop_others (caplog: pytest.LogCaptureFixture) -> None:

	"""A listener that raises is logged and later listeners still run."""

	emitter = beatgrid.event_emitter.EventEmitter()
	received: list[int] = []

	def broken (v: int) -> None:
		raise RuntimeError("listener bug")

	emitter.on("tempo", broken)
	emitter.on("tempo", received.append)

	with caplog.at_level(logging.ERROR, logger="beatgrid.event_emitter"):
		emitter.emit_sync("tempo", 90)

	assert received == [90]
	assert "Listener for 'tempo' failed" in caplog.text


@pytest.mark.asyncio
async def test_emit_sync_schedules_coroutine_listeners () -> None:

	emitter = beatgrid.event_emitter.EventEmitter()
	received: list[str] = []

	async def listener () -> None:
		received.append("stopped")

	emitter.on("stop", listener)
	emitter.emit_sync("stop")

	assert received == []

	await asyncio.sleep(0)

	assert received == ["stopped"]


@pytest.mark.asyncio
async def test_coroutine_listener_failure_is_logged (caplog: pytest.LogCaptureFixture) -> None:

	"""An exception raised inside a scheduled coroutine listener reaches the log."""

	emitter = beatgrid.event_emitter.EventEmitter()

	async def broken () -> None:
		raise RuntimeError("async listener bug")

	emitter.on("stop", broken)

	with caplog.at_level(logging.ERROR, logger="beatgrid.event_emitter"):
		emitter.emit_sync("stop")
		await emitter.drain_tasks()
		await asyncio.sleep(0)

	assert "Listener for 'stop' failed" in caplog.text
	assert "async listener bug" in caplog.text
	assert emitter.pending_tasks == 0


@pytest.mark.asyncio
async def test_scheduled_tasks_are_held_until_done () -> None:

	emitter = beatgrid.event_emitter.EventEmitter()
	received: list[str] = []

	async def slow (name: str) -> None:
		await asyncio.sleep(0.01)
		received.append(name)

	emitter.on("start", slow)
	emitter.emit_sync("start", "go")

	assert emitter.pending_tasks == 1

	await emitter.drain_tasks()

	assert received == ["go"]
	assert emitter.pending_tasks == 0
