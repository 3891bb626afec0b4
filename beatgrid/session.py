import asyncio
import logging
import typing

import beatgrid.clock
import beatgrid.config
import beatgrid.dispatch
import beatgrid.display
import beatgrid.event_emitter
import beatgrid.highlight
import beatgrid.keyboard
import beatgrid.osc
import beatgrid.pattern
import beatgrid.sequencer
import beatgrid.sound
import beatgrid.transport
import beatgrid.web_bridge


logger = logging.getLogger(__name__)


class Session:

	"""
	One sequencer session: the grid, the transport and everything wired to them.

	The session owns all mutable state - the pattern matrix, the cursor, the
	tempo - and builds its components around it, so nothing lives in module
	globals.  All changes go through a single :class:`beatgrid.dispatch.Dispatcher`;
	clock ticks are queued there too, which keeps edits and ticks strictly
	one after the other.

	Example:
		```python
		session = beatgrid.Session()
		session.store.load_rows({"kick": "x...x...", "snare": "..x...x."})
		session.display()
		session.play()
		```
	"""

	def __init__ (
		self,
		config: typing.Optional[beatgrid.config.SessionConfig] = None,
		sound: typing.Optional[beatgrid.sound.SoundTrigger] = None,
		realtime: bool = True,
		spin_wait: bool = True
	) -> None:

		"""Build a session from *config*.

		Parameters:
			config: Instruments, grid size and tempo bounds.  Defaults to
				:class:`beatgrid.config.SessionConfig` defaults.
			sound: Output backend.  Defaults to MIDI out on the configured
				``output_device``.
			realtime: False for an offline clock driven by
				``session.clock.run_until()`` (rendering, tests).
			spin_wait: Passed to the clock; see :class:`beatgrid.clock.TransportClock`.
		"""

		self.config = config if config is not None else beatgrid.config.SessionConfig()
		self.events = beatgrid.event_emitter.EventEmitter()

		if sound is None:
			sound = beatgrid.sound.MidiSoundTrigger(output_device_name=self.config.output_device)

		self.sound = sound

		self.store = beatgrid.pattern.PatternStore(self.config.instruments, self.config.step_count)

		if self.config.pattern:
			self.store.load_rows(self.config.pattern)

		self.reporter = beatgrid.highlight.StepHighlightReporter()
		self.clock = beatgrid.clock.TransportClock(initial_bpm=self.config.initial_bpm, realtime=realtime, spin_wait=spin_wait)
		self.controller = beatgrid.sequencer.SequencerController(self.store, self.sound, self.reporter, self.events)
		self.dispatcher = beatgrid.dispatch.Dispatcher()

		self.transport = beatgrid.transport.TransportControl(
			clock = self.clock,
			controller = self.controller,
			sound = self.sound,
			reporter = self.reporter,
			tempo_range = self.config.tempo_range,
			subdivision = self.config.subdivision,
			events = self.events,
			tick_sink = self._post_tick
		)

		self.keyboard = beatgrid.keyboard.Keyboard(
			sound = self.sound,
			notes = self.config.keyboard_notes,
			tempo = lambda: self.transport.tempo
		)

		self.dispatcher.register(beatgrid.dispatch.ToggleCell, self._handle_toggle)
		self.dispatcher.register(beatgrid.dispatch.SetCell, self._handle_set_cell)
		self.dispatcher.register(beatgrid.dispatch.ClearPattern, self._handle_clear)
		self.dispatcher.register(beatgrid.dispatch.Resize, self._handle_resize)
		self.dispatcher.register(beatgrid.dispatch.Play, self._handle_play)
		self.dispatcher.register(beatgrid.dispatch.Stop, self._handle_stop)
		self.dispatcher.register(beatgrid.dispatch.SetTempo, self._handle_tempo)
		self.dispatcher.register(beatgrid.dispatch.Tick, self._handle_tick)
		self.dispatcher.register(beatgrid.dispatch.PressKey, self._handle_key)

		self._display: typing.Optional[beatgrid.display.Display] = None
		self._osc_server: typing.Optional[beatgrid.osc.OscServer] = None
		self._web_bridge: typing.Optional[beatgrid.web_bridge.WebBridge] = None
		self._done: typing.Optional[asyncio.Event] = None


	@classmethod
	def from_config (cls, config: beatgrid.config.SessionConfig, sound: typing.Optional[beatgrid.sound.SoundTrigger] = None) -> "Session":

		"""
		Build a session and switch on the display, OSC and web bridge the config asks for.
		"""

		session = cls(config, sound=sound)

		if config.display.get("enabled", False):
			session.display(enabled=True)

		if config.osc is not None:
			session.osc(**config.osc)

		if config.web is not None:
			session.web_ui(**config.web)

		return session


	@property
	def state (self) -> beatgrid.transport.TransportState:

		"""Snapshot of the transport: running, tempo, cursor."""

		return self.transport.state()


	# ------------------------------------------------------------------
	# Message handlers
	# ------------------------------------------------------------------

	def _handle_toggle (self, message: beatgrid.dispatch.ToggleCell) -> bool:

		active = self.store.toggle(message.row, message.step)
		self._cell_changed(message.row, message.step, active)
		return active

	def _handle_set_cell (self, message: beatgrid.dispatch.SetCell) -> bool:

		active = self.store.set_cell(message.row, message.step, message.active)
		self._cell_changed(message.row, message.step, active)
		return active

	def _handle_clear (self, message: beatgrid.dispatch.ClearPattern) -> None:

		previous = self.store.to_grid()
		self.store.clear()

		for row, cells in enumerate(previous):
			for step, active in enumerate(cells):
				if active:
					self._cell_changed(row, step, False)

	def _handle_resize (self, message: beatgrid.dispatch.Resize) -> int:

		self.controller.reconfigure(message.step_count)
		self.events.emit_sync("resize", message.step_count)
		return self.store.step_count

	async def _handle_play (self, message: beatgrid.dispatch.Play) -> bool:

		return await self.transport.start()

	def _handle_stop (self, message: beatgrid.dispatch.Stop) -> bool:

		return self.transport.stop()

	def _handle_tempo (self, message: beatgrid.dispatch.SetTempo) -> int:

		return self.transport.set_tempo(message.bpm)

	def _handle_tick (self, message: beatgrid.dispatch.Tick) -> typing.List[beatgrid.sequencer.TriggerEvent]:

		return self.transport.handle_tick(message.subscription, message.scheduled_time)

	async def _handle_key (self, message: beatgrid.dispatch.PressKey) -> int:

		return await self.keyboard.press(message.note)

	def _cell_changed (self, row: int, step: int, active: bool) -> None:

		self.reporter.report_cell(row, step, active)
		self.events.emit_sync("cell", row, step, active)

	def _post_tick (self, subscription: beatgrid.clock.Subscription, scheduled_time: float) -> None:

		self.dispatcher.post(beatgrid.dispatch.Tick(subscription, scheduled_time))


	# ------------------------------------------------------------------
	# Input
	# ------------------------------------------------------------------

	async def submit (self, message: typing.Any) -> typing.Any:

		"""
		Queue a message and wait for its result.  See :meth:`beatgrid.dispatch.Dispatcher.submit`.
		"""

		return await self.dispatcher.submit(message)


	def post (self, message: typing.Any) -> None:

		"""
		Queue a message without waiting.
		"""

		self.dispatcher.post(message)


	def toggle (self, row: int, step: int) -> bool:

		"""
		Flip a cell right away, outside the message queue (for scripts and set-up).
		"""

		return self._handle_toggle(beatgrid.dispatch.ToggleCell(row, step))


	def set_tempo (self, bpm: float) -> int:

		"""
		Set the tempo right away, outside the message queue.
		"""

		return self.transport.set_tempo(bpm)


	def on_event (self, event_name: str, callback: typing.Callable[..., typing.Any]) -> None:

		"""
		Register a callback for a named session event (see :class:`beatgrid.event_emitter.EventEmitter`).
		"""

		self.events.on(event_name, callback)


	# ------------------------------------------------------------------
	# Optional surfaces
	# ------------------------------------------------------------------

	def display (self, enabled: bool = True) -> None:

		"""
		Show the grid and transport status in the terminal while playing.
		"""

		if not enabled:
			if self._display is not None:
				self._display.stop()
				self.reporter.remove_surface(self._display)
			self._display = None
			return

		if self._display is None:
			self._display = beatgrid.display.Display(self)
			self.reporter.add_surface(self._display)


	def osc (self, receive_port: int = 9000, send_port: int = 9001, send_host: str = "127.0.0.1") -> None:

		"""
		Accept OSC control messages and broadcast transport state over OSC.
		"""

		self._osc_server = beatgrid.osc.OscServer(self, receive_port=receive_port, send_port=send_port, send_host=send_host)


	def web_ui (self, port: int = 8765, host: str = "127.0.0.1") -> None:

		"""
		Serve grid state and accept grid edits over a WebSocket.
		"""

		self._web_bridge = beatgrid.web_bridge.WebBridge(self, port=port, host=host)
		self.reporter.add_surface(self._web_bridge)


	# ------------------------------------------------------------------
	# Running
	# ------------------------------------------------------------------

	def play (self) -> None:

		"""
		Run the session until interrupted (Ctrl+C).
		"""

		try:
			asyncio.run(self._run())

		except KeyboardInterrupt:
			pass


	def request_stop (self) -> None:

		"""
		Ask a running :meth:`play` loop to shut down.
		"""

		if self._done is not None:
			self._done.set()


	async def _run (self) -> None:

		"""
		Start the dispatcher and surfaces, then wait until asked to stop.
		"""

		self._done = asyncio.Event()
		self.dispatcher.start()

		if self._display is not None:
			self._display.start()

		if self._osc_server is not None:
			await self._osc_server.start()

		if self._web_bridge is not None:
			await self._web_bridge.start()

		if self.config.autoplay:
			await self.submit(beatgrid.dispatch.Play())

		try:
			await self._done.wait()

		finally:
			self.transport.stop()
			await self.dispatcher.stop()
			await self.events.drain_tasks()

			if self._web_bridge is not None:
				await self._web_bridge.stop()

			if self._osc_server is not None:
				await self._osc_server.stop()

			if self._display is not None:
				self._display.stop()

			close = getattr(self.sound, "close", None)

			if close is not None:
				close()

			self._done = None

			logger.info("Session closed")


	def render (self, cycles: int = 4, filename: str = "render.mid") -> int:

		"""Render *cycles* passes of the pattern to a MIDI file, without waiting.

		The grid and tempo are copied into an offline session whose clock is
		stepped through simulated time.  Returns the number of hits written.
		"""

		if cycles <= 0:
			raise ValueError("cycles must be positive")

		recorder = beatgrid.sound.RecordingSoundTrigger()
		offline = Session(self.config, sound=recorder, realtime=False)
		offline.store.resize(self.store.step_count)
		offline.store.load_grid(self.store.to_grid())
		offline.transport.set_tempo(self.transport.tempo)

		asyncio.run(offline._render(cycles))

		recorder.save(filename, offline.transport.tempo)

		return len(recorder.hits)


	async def _render (self, cycles: int) -> None:

		if not await self.submit(beatgrid.dispatch.Play()):
			raise beatgrid.sound.AudioUnlockError("Render output did not start")

		total_ticks = cycles * self.store.step_count
		interval = self.clock.interval(self.transport.subdivision)

		# Half an interval past the last tick absorbs float rounding in the clock.
		self.clock.run_until(interval * (total_ticks - 0.5))
		await self.dispatcher.drain()

		await self.submit(beatgrid.dispatch.Stop())
