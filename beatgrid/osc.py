"""OSC remote control for a session.

Start the server by calling ``session.osc()`` before ``session.play()``.
The server listens on a UDP port (default 9000) for control messages and
sends transport updates to a target host/port (default 127.0.0.1:9001).

Built-in Receive Handlers
─────────────────────────
- ``/play``: Start the transport
- ``/stop``: Stop the transport
- ``/bpm <int>``: Set tempo
- ``/toggle <row> <step>``: Flip a grid cell
- ``/note <name>``: Play a keyboard note (e.g. ``C4``)

Built-in Send Events
────────────────────
- ``/step <int>``: On every step
- ``/bpm <int>``: On tempo change
- ``/transport <0|1>``: On start (1) and stop (0)
- ``/cell <row> <step> <0|1>``: On cell change

Incoming messages are queued on the session's dispatcher, so they are
handled in order with clock ticks and every other input.
"""

import asyncio
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import beatgrid.dispatch

if typing.TYPE_CHECKING:
	from beatgrid.session import Session


logger = logging.getLogger(__name__)


class OscServer:

	"""Async OSC server/client for bi-directional communication."""

	def __init__ (
		self,
		session: "Session",
		receive_port: int = 9000,
		send_port: int = 9001,
		send_host: str = "127.0.0.1"
	) -> None:

		self._session = session
		self._receive_port = receive_port
		self._send_port = send_port
		self._send_host = send_host

		self._server: typing.Optional[typing.Any] = None
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		self._dispatcher.map("/play", self._handle_play)
		self._dispatcher.map("/stop", self._handle_stop)
		self._dispatcher.map("/bpm", self._handle_bpm)
		self._dispatcher.map("/toggle", self._handle_toggle)
		self._dispatcher.map("/note", self._handle_note)

		session.on_event("step", self._on_step)
		session.on_event("tempo", self._on_tempo)
		session.on_event("start", self._on_start)
		session.on_event("stop", self._on_stop)
		session.on_event("cell", self._on_cell)


	async def start (self) -> None:

		"""Start the OSC server and client."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		self._server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_event_loop()  # type: ignore[arg-type]
		)

		transport, _ = await self._server.create_serve_endpoint()
		self._transport = transport

		logger.info(f"OSC listening on :{self._receive_port}, sending to {self._send_host}:{self._send_port}")


	async def stop (self) -> None:

		"""Stop the OSC server."""

		if self._transport:
			self._transport.close()
			self._transport = None
			logger.info("OSC server stopped")


	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, list(args))
			except Exception as e:
				logger.warning(f"OSC send error: {e}")


	def map (self, address: str, handler: typing.Callable) -> None:

		"""Register a custom OSC handler."""

		self._dispatcher.map(address, handler)


	# Receive handlers

	def _handle_play (self, address: str, *args: typing.Any) -> None:
		self._session.post(beatgrid.dispatch.Play())

	def _handle_stop (self, address: str, *args: typing.Any) -> None:
		self._session.post(beatgrid.dispatch.Stop())

	def _handle_bpm (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			bpm = int(args[0])
		except (ValueError, TypeError, OverflowError):
			logger.warning(f"Invalid OSC BPM argument: {args[0]}")
			return
		self._session.post(beatgrid.dispatch.SetTempo(bpm))

	def _handle_toggle (self, address: str, *args: typing.Any) -> None:
		if len(args) < 2:
			logger.warning(f"/toggle needs <row> <step>, got {args}")
			return
		try:
			row, step = int(args[0]), int(args[1])
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC toggle arguments: {args}")
			return
		self._session.post(beatgrid.dispatch.ToggleCell(row, step))

	def _handle_note (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		self._session.post(beatgrid.dispatch.PressKey(str(args[0])))


	# Session event forwarding

	def _on_step (self, step: int, scheduled_time: float) -> None:
		self.send("/step", step)

	def _on_tempo (self, bpm: int) -> None:
		self.send("/bpm", bpm)

	def _on_start (self) -> None:
		self.send("/transport", 1)

	def _on_stop (self) -> None:
		self.send("/transport", 0)

	def _on_cell (self, row: int, step: int, active: bool) -> None:
		self.send("/cell", row, step, 1 if active else 0)
