import asyncio
import json
import logging
import math
import typing
import weakref

import websockets
import websockets.asyncio.server
import websockets.exceptions

import beatgrid.dispatch

logger = logging.getLogger(__name__)


class WebBridge:

    """
    WebSocket link between a session and browser clients.

    Clients receive the grid, cursor, tempo and transport state as JSON
    whenever something changes, and send commands back::

        {"type": "toggle", "row": 0, "step": 4}
        {"type": "play"}
        {"type": "stop"}
        {"type": "tempo", "bpm": 96}
        {"type": "note", "note": "E4"}

    Commands are queued on the session's dispatcher.  The bridge is also a
    rendering surface: highlight and cell calls only mark the state dirty,
    and a background loop broadcasts at most ``rate`` times a second so the
    tick path never waits on the network.
    """

    def __init__ (self, session: typing.Any, port: int = 8765, host: str = "127.0.0.1", rate: float = 30.0) -> None:

        if rate <= 0:
            raise ValueError("Broadcast rate must be positive")

        self.session_ref = weakref.ref(session)
        self.port = port
        self.host = host
        self.rate = rate
        self._ws_server: typing.Optional[websockets.asyncio.server.Server] = None
        self._broadcast_task: typing.Optional[asyncio.Task] = None
        self._clients: typing.Set[websockets.asyncio.server.ServerConnection] = set()
        self._current_step: typing.Optional[int] = None
        self._dirty = True

        for event_name in ("tempo", "start", "stop", "resize"):
            session.on_event(event_name, self._mark_dirty)

    def _mark_dirty (self, *args: typing.Any) -> None:
        self._dirty = True

    # RenderingSurface

    def highlight_step (self, step: int) -> None:
        self._current_step = step
        self._dirty = True

    def clear_highlight (self) -> None:
        self._current_step = None
        self._dirty = True

    def cell_changed (self, row: int, step: int, active: bool) -> None:
        self._dirty = True

    async def start (self) -> None:

        try:
            self._ws_server = await websockets.asyncio.server.serve(self._handle_client, self.host, self.port)
        except OSError as e:
            logger.error(f"WebSocket server error: {e}")
            return

        self._broadcast_task = asyncio.create_task(self._broadcast_loop())
        logger.info(f"Web bridge listening on ws://{self.host}:{self.port}")

    async def stop (self) -> None:

        if self._broadcast_task is not None:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None

        if self._ws_server is not None:
            self._ws_server.close()
            await self._ws_server.wait_closed()
            self._ws_server = None
            logger.info("Web bridge stopped")

    async def _handle_client (self, websocket: websockets.asyncio.server.ServerConnection) -> None:

        self._clients.add(websocket)
        session = self.session_ref()

        try:
            if session is not None:
                await websocket.send(json.dumps(self.get_state(session)))

            async for raw in websocket:
                reply = self.handle_command(raw)
                if reply is not None:
                    await websocket.send(json.dumps(reply))
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self._clients.discard(websocket)

    def handle_command (self, raw: typing.Union[str, bytes]) -> typing.Optional[typing.Dict[str, typing.Any]]:

        """
        Parse one client command and queue it; return an error reply for bad input.
        """

        session = self.session_ref()

        if session is None:
            return None

        try:
            message = self.parse_command(json.loads(raw))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Rejected web command {raw!r}: {e}")
            return {"type": "error", "message": str(e)}

        session.post(message)
        return None

    @staticmethod
    def parse_command (data: typing.Any) -> typing.Any:

        """
        Turn a decoded JSON command into a dispatcher message.
        """

        if not isinstance(data, dict):
            raise ValueError("Command must be a JSON object")

        kind = data.get("type")

        if kind == "toggle":
            return beatgrid.dispatch.ToggleCell(int(data["row"]), int(data["step"]))
        if kind == "set":
            return beatgrid.dispatch.SetCell(int(data["row"]), int(data["step"]), bool(data["active"]))
        if kind == "play":
            return beatgrid.dispatch.Play()
        if kind == "stop":
            return beatgrid.dispatch.Stop()
        if kind == "tempo":
            bpm = float(data["bpm"])
            if math.isnan(bpm):
                raise ValueError("Tempo must be a number")
            return beatgrid.dispatch.SetTempo(bpm)
        if kind == "note":
            return beatgrid.dispatch.PressKey(str(data["note"]))
        if kind == "clear":
            return beatgrid.dispatch.ClearPattern()

        raise ValueError(f"Unknown command type: {kind!r}")

    async def _broadcast_loop (self) -> None:

        while True:
            await asyncio.sleep(1.0 / self.rate)

            if not self._clients or not self._dirty:
                continue

            session = self.session_ref()
            if session is None:
                break

            self._dirty = False

            try:
                websockets.asyncio.server.broadcast(self._clients, json.dumps(self.get_state(session)))
            except Exception:
                logger.exception("Error broadcasting session state")

    def get_state (self, session: typing.Any) -> typing.Dict[str, typing.Any]:

        state = session.state

        return {
            "type": "state",
            "running": state.running,
            "bpm": state.tempo_bpm,
            "tempo_min": session.transport.tempo_min,
            "tempo_max": session.transport.tempo_max,
            "step_count": state.step_count,
            "current_step": self._current_step,
            "instruments": [{"name": i.name, "label": i.label} for i in session.store.instruments],
            "grid": session.store.to_grid(),
            "keyboard": list(session.keyboard.notes),
        }
