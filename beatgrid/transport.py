import dataclasses
import enum
import logging
import math
import typing

import beatgrid.clock
import beatgrid.constants.pulses
import beatgrid.event_emitter
import beatgrid.highlight
import beatgrid.sequencer
import beatgrid.sound


logger = logging.getLogger(__name__)

TickSink = typing.Callable[[beatgrid.clock.Subscription, float], typing.Any]


class TransportStatus (enum.Enum):

	"""Transport states."""

	STOPPED = "stopped"
	RUNNING = "running"


@dataclasses.dataclass (frozen=True)
class TransportState:

	"""
	Snapshot of the transport at one moment.
	"""

	running: bool
	tempo_bpm: int
	current_step: int
	step_count: int


class TransportControl:

	"""
	Play, stop and tempo control for the sequencer.

	A strict two-state machine.  ``start()`` creates exactly one clock
	subscription and keeps its handle; ``stop()`` cancels exactly that
	handle.  While running, a second ``start()`` is refused, so the tick
	handler can never be subscribed twice.

	Clock ticks can be routed through a *tick sink* (the session's
	dispatcher) instead of being handled inline.  Either way they end in
	:meth:`handle_tick`, which ignores any tick whose subscription is no
	longer the live one.
	"""

	def __init__ (
		self,
		clock: beatgrid.clock.TransportClock,
		controller: beatgrid.sequencer.SequencerController,
		sound: beatgrid.sound.SoundTrigger,
		reporter: beatgrid.highlight.StepHighlightReporter,
		tempo_range: typing.Tuple[int, int] = (60, 180),
		subdivision: int = beatgrid.constants.pulses.SIXTEENTH_NOTE,
		events: typing.Optional[beatgrid.event_emitter.EventEmitter] = None,
		tick_sink: typing.Optional[TickSink] = None
	) -> None:

		"""Wire the control surface to its collaborators.

		Parameters:
			clock: Tick source; its rate follows :meth:`set_tempo`.
			controller: Receives one ``on_tick`` per live tick.
			sound: Unlocked before every start.
			reporter: Cleared on stop.
			tempo_range: Inclusive ``(min, max)`` BPM bounds.
			subdivision: Pulses per step (6 = sixteenth notes).
			events: Emitter for ``start``, ``stop``, ``tempo`` and ``unlock_failed``.
			tick_sink: Optional ``sink(subscription, scheduled_time)``; when
				omitted ticks go straight to :meth:`handle_tick`.
		"""

		tempo_min, tempo_max = tempo_range

		if tempo_min <= 0 or tempo_min > tempo_max:
			raise ValueError(f"Invalid tempo range: {tempo_range}")

		if subdivision <= 0:
			raise ValueError("Subdivision must be a positive number of pulses")

		self.clock = clock
		self.controller = controller
		self.sound = sound
		self.reporter = reporter
		self.tempo_min = int(tempo_min)
		self.tempo_max = int(tempo_max)
		self.subdivision = subdivision
		self.events = events if events is not None else beatgrid.event_emitter.EventEmitter()
		self.tick_sink = tick_sink

		self.status = TransportStatus.STOPPED
		self._subscription: typing.Optional[beatgrid.clock.Subscription] = None
		self._starting = False

		self.tempo = self._clamp(clock.current_bpm)
		self.clock.set_rate(self.tempo)


	@property
	def running (self) -> bool:

		"""True while the transport is running."""

		return self.status is TransportStatus.RUNNING

	@property
	def subscription (self) -> typing.Optional[beatgrid.clock.Subscription]:

		"""The live clock subscription, or None when stopped."""

		return self._subscription


	def state (self) -> TransportState:

		"""
		Return a snapshot of running flag, tempo and cursor.
		"""

		return TransportState(
			running = self.running,
			tempo_bpm = self.tempo,
			current_step = self.controller.current_step,
			step_count = self.controller.step_count
		)


	def _clamp (self, bpm: float) -> int:

		if math.isnan(bpm):
			raise ValueError("Tempo must be a number")

		return int(round(max(self.tempo_min, min(self.tempo_max, bpm))))


	async def start (self) -> bool:

		"""Start playback from the first step.

		Waits for the sound backend to unlock first.  Returns True when the
		transport started, False when it was already running or the backend
		refused (in which case it stays stopped and can be started again).
		"""

		if self.status is TransportStatus.RUNNING or self._starting:
			logger.warning("Transport already running - start() ignored")
			return False

		self._starting = True

		try:
			await self.sound.unlock()

		except beatgrid.sound.AudioUnlockError as e:
			logger.warning(f"Audio output not available, transport stays stopped: {e}")
			self.events.emit_sync("unlock_failed", e)
			return False

		finally:
			self._starting = False

		self.controller.reset()
		self._subscription = self.clock.schedule_repeating(self.subdivision, self._on_clock_tick)
		self.clock.start()
		self.status = TransportStatus.RUNNING

		logger.info(f"Transport started at {self.tempo} BPM")

		self.events.emit_sync("start")

		return True


	def stop (self) -> bool:

		"""Stop playback and return the cursor to the first step.

		Sound already sent for the current tick plays out.  Calling this
		while stopped does nothing and returns False.
		"""

		if self.status is TransportStatus.STOPPED:
			return False

		subscription = self._subscription
		self._subscription = None

		if subscription is not None:
			self.clock.cancel(subscription)

		self.clock.stop()
		self.controller.reset()
		self.reporter.clear()
		self.status = TransportStatus.STOPPED

		logger.info("Transport stopped")

		self.events.emit_sync("stop")

		return True


	def set_tempo (self, bpm: float) -> int:

		"""Set the tempo, clamped to the configured range.

		The clock picks the new rate up from its last tick; the cursor is not
		touched.  Returns the tempo applied.  Raises ``ValueError`` for NaN.
		"""

		tempo = self._clamp(bpm)

		if not self.tempo_min <= bpm <= self.tempo_max:
			logger.info(f"Tempo {bpm} clamped to {tempo} BPM")

		self.tempo = tempo
		self.clock.set_rate(tempo)

		logger.info(f"Tempo set to {tempo} BPM")

		self.events.emit_sync("tempo", tempo)

		return tempo


	def _on_clock_tick (self, scheduled_time: float) -> None:

		# The clock only calls live subscriptions, so this is the stored handle.
		subscription = self._subscription

		if subscription is None:
			return

		if self.tick_sink is not None:
			self.tick_sink(subscription, scheduled_time)
		else:
			self.handle_tick(subscription, scheduled_time)


	def handle_tick (self, subscription: beatgrid.clock.Subscription, scheduled_time: float) -> typing.List[beatgrid.sequencer.TriggerEvent]:

		"""
		Run one sequencer step if *subscription* is still the live one.
		"""

		if self.status is not TransportStatus.RUNNING or subscription is not self._subscription:
			logger.debug(f"Stale tick at {scheduled_time:.4f}s dropped")
			return []

		return self.controller.on_tick(scheduled_time)
