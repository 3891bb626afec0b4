import logging
import typing

import pytest

import beatgrid.highlight
import beatgrid.instrument
import beatgrid.pattern
import beatgrid.sequencer
import beatgrid.sound


KICK = beatgrid.instrument.Instrument("kick", "Kick", 36)
SNARE = beatgrid.instrument.Instrument("snare", "Snare", 38)


def _controller (
	sound: typing.Any,
	surface: typing.Any = None,
	step_count: int = 8
) -> beatgrid.sequencer.SequencerController:

	"""Build a controller over a two-row kick/snare grid."""

	store = beatgrid.pattern.PatternStore([KICK, SNARE], step_count)
	reporter = beatgrid.highlight.StepHighlightReporter([surface] if surface is not None else [])

	return beatgrid.sequencer.SequencerController(store, sound, reporter)


def test_eight_step_kick_and_snare (recorder: beatgrid.sound.RecordingSoundTrigger, surface: typing.Any) -> None:

	"""Kick on step 0 and snare on step 4 fire on ticks 0 and 4, then the cursor wraps."""

	controller = _controller(recorder, surface)
	controller.store.toggle(0, 0)
	controller.store.toggle(1, 4)

	fired = [controller.on_tick(i * 0.125) for i in range(8)]

	assert [[t.instrument.name for t in triggers] for triggers in fired] == [
		["kick"], [], [], [], ["snare"], [], [], []
	]
	assert controller.current_step == 0
	assert controller.tick_count == 8
	assert surface.highlights == list(range(8))
	assert [(hit.name, hit.time) for hit in recorder.hits] == [("kick", 0.0), ("snare", 0.5)]


def test_same_column_shares_scheduled_time (recorder: beatgrid.sound.RecordingSoundTrigger) -> None:

	controller = _controller(recorder)
	controller.store.toggle(0, 0)
	controller.store.toggle(1, 0)

	triggers = controller.on_tick(3.75)

	assert [t.row for t in triggers] == [0, 1]
	assert {t.scheduled_time for t in triggers} == {3.75}
	assert {hit.time for hit in recorder.hits} == {3.75}


def test_step_is_reported_before_any_trigger () -> None:

	order: list[tuple] = []

	class Sound:
		def trigger (self, instrument: beatgrid.instrument.Instrument, scheduled_time: float) -> None:
			order.append(("trigger", instrument.name))

	class Surface:
		def highlight_step (self, step: int) -> None:
			order.append(("highlight", step))
		def clear_highlight (self) -> None:
			pass
		def cell_changed (self, row: int, step: int, active: bool) -> None:
			pass

	controller = _controller(Sound(), Surface())
	controller.store.toggle(0, 0)
	controller.store.toggle(1, 0)

	controller.on_tick(0.0)

	assert order == [("highlight", 0), ("trigger", "kick"), ("trigger", "snare")]


def test_toggle_between_ticks_applies_to_next_read (recorder: beatgrid.sound.RecordingSoundTrigger) -> None:

	controller = _controller(recorder)

	assert controller.on_tick(0.0) == []

	controller.store.toggle(0, 1)

	assert [t.step for t in controller.on_tick(0.125)] == [1]


def test_failing_sound_is_logged_and_cursor_advances (caplog: pytest.LogCaptureFixture) -> None:

	class BrokenSound:
		def trigger (self, instrument: beatgrid.instrument.Instrument, scheduled_time: float) -> None:
			raise RuntimeError("device unplugged")

	controller = _controller(BrokenSound())
	controller.store.toggle(0, 0)

	with caplog.at_level(logging.ERROR, logger="beatgrid.sequencer"):
		triggers = controller.on_tick(0.0)

	assert len(triggers) == 1
	assert controller.current_step == 1
	assert "Sound trigger failed for kick" in caplog.text


def test_events_are_emitted (recorder: beatgrid.sound.RecordingSoundTrigger) -> None:

	controller = _controller(recorder)
	controller.store.toggle(1, 0)

	steps: list[tuple] = []
	triggers: list[beatgrid.sequencer.TriggerEvent] = []

	controller.events.on("step", lambda step, t: steps.append((step, t)))
	controller.events.on("trigger", triggers.append)

	controller.on_tick(0.0)
	controller.on_tick(0.125)

	assert steps == [(0, 0.0), (1, 0.125)]
	assert triggers == [beatgrid.sequencer.TriggerEvent(SNARE, 1, 0, 0.0)]


def test_reset_returns_cursor_to_start (recorder: beatgrid.sound.RecordingSoundTrigger) -> None:

	controller = _controller(recorder)

	for i in range(3):
		controller.on_tick(i * 0.125)

	controller.reset()

	assert controller.current_step == 0


def test_reconfigure_clamps_dangling_cursor (recorder: beatgrid.sound.RecordingSoundTrigger) -> None:

	"""Shrinking the pattern below the cursor moves the cursor to the new last step."""

	controller = _controller(recorder)

	for i in range(6):
		controller.on_tick(i * 0.125)

	assert controller.current_step == 6

	controller.reconfigure(4)

	assert controller.step_count == 4
	assert controller.current_step == 3

	controller.on_tick(1.0)

	assert controller.current_step == 0


def test_reconfigure_larger_keeps_cursor (recorder: beatgrid.sound.RecordingSoundTrigger) -> None:

	controller = _controller(recorder)

	for i in range(5):
		controller.on_tick(i * 0.125)

	controller.reconfigure(16)

	assert controller.current_step == 5
	assert controller.step_count == 16
