import dataclasses
import logging
import typing

import beatgrid.event_emitter
import beatgrid.highlight
import beatgrid.instrument
import beatgrid.pattern
import beatgrid.sound


logger = logging.getLogger(__name__)


@dataclasses.dataclass (frozen=True)
class TriggerEvent:

	"""
	One instrument sounding on one tick.
	"""

	instrument: beatgrid.instrument.Instrument
	row: int
	step: int
	scheduled_time: float


class SequencerController:

	"""
	Advance the step cursor and decide what plays on each tick.

	The controller is the only thing that moves the cursor.  For every tick
	it reports the step that is about to sound, triggers each active row of
	that column at the tick's scheduled time, and then moves on one step,
	wrapping at the end of the pattern.
	"""

	def __init__ (
		self,
		store: beatgrid.pattern.PatternStore,
		sound: beatgrid.sound.SoundTrigger,
		reporter: beatgrid.highlight.StepHighlightReporter,
		events: typing.Optional[beatgrid.event_emitter.EventEmitter] = None
	) -> None:

		self.store = store
		self.sound = sound
		self.reporter = reporter
		self.events = events if events is not None else beatgrid.event_emitter.EventEmitter()

		self._current_step = 0
		self.tick_count = 0


	@property
	def current_step (self) -> int:

		"""The step the next tick will play."""

		return self._current_step

	@property
	def step_count (self) -> int:

		"""Number of steps in the pattern."""

		return self.store.step_count


	def reset (self) -> None:

		"""
		Put the cursor back on the first step.
		"""

		self._current_step = 0


	def on_tick (self, scheduled_time: float) -> typing.List[TriggerEvent]:

		"""
		Play the current step at *scheduled_time* and advance the cursor.

		Every trigger from one tick carries the same *scheduled_time*, so
		cells in the same column sound together however long the loop takes.
		Returns the triggers issued.
		"""

		step = self._current_step

		self.reporter.report_step(step)
		self.events.emit_sync("step", step, scheduled_time)

		triggers: typing.List[TriggerEvent] = []

		for row, active in self.store.column_snapshot(step):

			if not active:
				continue

			instrument = self.store.instruments[row]
			event = TriggerEvent(instrument=instrument, row=row, step=step, scheduled_time=scheduled_time)

			try:
				self.sound.trigger(instrument, scheduled_time)
			except Exception:
				logger.exception(f"Sound trigger failed for {instrument.name}")

			triggers.append(event)
			self.events.emit_sync("trigger", event)

		self._current_step = (step + 1) % self.store.step_count
		self.tick_count += 1

		if triggers:
			logger.debug(f"Step {step} at {scheduled_time:.4f}s: {', '.join(t.instrument.name for t in triggers)}")

		return triggers


	def reconfigure (self, step_count: int) -> None:

		"""
		Change the pattern length, keeping the cursor inside the new range.

		A cursor past the new end is clamped to the last step.
		"""

		self.store.resize(step_count)

		if self._current_step >= step_count:
			self._current_step = step_count - 1
