"""Single-threaded message loop for user input and clock ticks.

Every change to a session - a cell click, play, stop, a tempo move, a clock
tick - arrives as a message and is handled by one loop, one message at a
time.  A handler always runs to completion before the next message is
looked at, so a tick never sees a half-applied edit and an edit never lands
in the middle of a tick.  A toggle takes effect from the next tick that reads
its column.

Only ``Play`` suspends (while the audio output unlocks); messages that arrive
meanwhile wait in the queue.
"""

import asyncio
import dataclasses
import inspect
import logging
import typing

import beatgrid.clock


logger = logging.getLogger(__name__)


@dataclasses.dataclass (frozen=True)
class ToggleCell:

	"""Flip one grid cell."""

	row: int
	step: int


@dataclasses.dataclass (frozen=True)
class SetCell:

	"""Set one grid cell explicitly."""

	row: int
	step: int
	active: bool


@dataclasses.dataclass (frozen=True)
class ClearPattern:

	"""Deactivate every cell."""


@dataclasses.dataclass (frozen=True)
class Resize:

	"""Change the number of steps."""

	step_count: int


@dataclasses.dataclass (frozen=True)
class Play:

	"""Start the transport."""


@dataclasses.dataclass (frozen=True)
class Stop:

	"""Stop the transport."""


@dataclasses.dataclass (frozen=True)
class SetTempo:

	"""Change the tempo."""

	bpm: float


@dataclasses.dataclass (frozen=True)
class Tick:

	"""One clock tick for the subscription that produced it."""

	subscription: beatgrid.clock.Subscription
	scheduled_time: float


@dataclasses.dataclass (frozen=True)
class PressKey:

	"""Play a keyboard note."""

	note: str


Message = typing.Any
Handler = typing.Callable[[typing.Any], typing.Any]

_QueueItem = typing.Tuple[Message, typing.Optional[asyncio.Future]]


class Dispatcher:

	"""
	Route queued messages to handlers registered per message type.
	"""

	def __init__ (self) -> None:

		self._handlers: typing.Dict[type, Handler] = {}
		self._queue: "asyncio.Queue[_QueueItem]" = asyncio.Queue()
		self._task: typing.Optional[asyncio.Task] = None
		self.running = False
		self.processed = 0


	def register (self, message_type: type, handler: Handler) -> None:

		"""
		Handle messages of *message_type* with *handler* (sync or async).
		"""

		self._handlers[message_type] = handler


	@property
	def pending (self) -> int:

		"""Number of queued messages."""

		return self._queue.qsize()


	def post (self, message: Message) -> None:

		"""
		Queue a message without waiting for it.  Errors are logged.
		"""

		self._queue.put_nowait((message, None))


	async def submit (self, message: Message) -> typing.Any:

		"""Queue a message and wait for its handler's result.

		Messages queued earlier are handled first.  If the handler raises,
		the exception is re-raised here and nowhere else.  When the loop is
		not running the queue is drained inline.
		"""

		future: asyncio.Future = asyncio.get_running_loop().create_future()
		self._queue.put_nowait((message, future))

		if not self.running:
			await self.drain()

		return await future


	async def dispatch (self, message: Message) -> typing.Any:

		"""
		Run the handler for *message* immediately, bypassing the queue.
		"""

		handler = self._handlers.get(type(message))

		if handler is None:
			raise TypeError(f"No handler registered for {type(message).__name__}")

		result = handler(message)

		if inspect.isawaitable(result):
			result = await result

		return result


	async def _process (self, message: Message, future: typing.Optional[asyncio.Future]) -> None:

		try:
			result = await self.dispatch(message)

		except Exception as e:
			if future is None or future.cancelled():
				logger.exception(f"Handling {type(message).__name__} failed")
			else:
				future.set_exception(e)

		else:
			if future is not None and not future.cancelled():
				future.set_result(result)

		finally:
			self.processed += 1


	async def drain (self) -> int:

		"""
		Handle everything queued right now, including messages queued meanwhile.

		Returns the number of messages handled.
		"""

		count = 0

		while not self._queue.empty():
			message, future = self._queue.get_nowait()
			await self._process(message, future)
			count += 1

		return count


	async def run (self) -> None:

		"""
		Handle messages forever, in arrival order.
		"""

		self.running = True

		try:
			while True:
				message, future = await self._queue.get()
				await self._process(message, future)

		finally:
			self.running = False


	def start (self) -> None:

		"""
		Run the loop as a task on the current event loop.
		"""

		if self._task is not None and not self._task.done():
			return

		self._task = asyncio.get_running_loop().create_task(self.run())
		self.running = True


	async def stop (self) -> None:

		"""Cancel the loop task and drop what the stopped loop left behind.

		Queued clock ticks are discarded and waiters on submitted messages
		are cancelled.  Other posted messages move to a fresh queue, which
		binds to whichever event loop runs the dispatcher next.
		"""

		if self._task is not None:

			self._task.cancel()

			try:
				await self._task
			except asyncio.CancelledError:
				pass

		self._task = None
		self.running = False

		kept: typing.List[_QueueItem] = []
		dropped = 0

		while not self._queue.empty():
			message, future = self._queue.get_nowait()

			if future is None and not isinstance(message, Tick):
				kept.append((message, None))
				continue

			if future is not None:
				future.cancel()

			dropped += 1

		self._queue = asyncio.Queue()

		for item in kept:
			self._queue.put_nowait(item)

		if dropped:
			logger.debug(f"Dropped {dropped} queued messages on stop")
