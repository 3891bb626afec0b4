import asyncio
import functools
import inspect
import logging
import typing


logger = logging.getLogger(__name__)

CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	Named-event fan-out used by the transport, controller and session.

	Events raised by the sequencer core:

	- ``"start"`` / ``"stop"``: transport state changed
	- ``"tempo"`` (bpm): tempo applied
	- ``"step"`` (step, scheduled_time): a step is about to sound
	- ``"trigger"`` (event): one instrument was triggered
	- ``"cell"`` (row, step, active): a grid cell changed
	- ``"unlock_failed"`` (error): the audio backend refused to open
	"""

	def __init__ (self) -> None:

		"""
		Initialize an empty event registry.
		"""

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}
		self._tasks: typing.Set["asyncio.Task[typing.Any]"] = set()


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		self._listeners.setdefault(event_name, []).append(callback)


	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if event_name not in self._listeners or callback not in self._listeners[event_name]:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)


	def listener_count (self, event_name: str) -> int:

		"""
		Number of callbacks registered for *event_name*.
		"""

		return len(self._listeners.get(event_name, []))


	def emit_sync (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Call every listener immediately.

		Coroutine listeners are scheduled as tasks on the running loop, so a
		synchronous caller (a clock tick, ``stop()``) never has to await them.
		The emitter holds each task until it finishes and logs its failure.
		A listener that raises is logged and the remaining listeners still run.
		"""

		for callback in list(self._listeners.get(event_name, [])):

			try:
				if inspect.iscoroutinefunction(callback):
					task = asyncio.get_running_loop().create_task(callback(*args, **kwargs))
					self._tasks.add(task)
					task.add_done_callback(functools.partial(self._task_done, event_name))
				else:
					callback(*args, **kwargs)

			except Exception:
				logger.exception(f"Listener for {event_name!r} failed")


	def _task_done (self, event_name: str, task: "asyncio.Task[typing.Any]") -> None:

		self._tasks.discard(task)

		if task.cancelled():
			return

		error = task.exception()

		if error is not None:
			logger.error(f"Listener for {event_name!r} failed", exc_info=error)


	@property
	def pending_tasks (self) -> int:

		"""Coroutine listeners scheduled by emit_sync that have not finished."""

		return len(self._tasks)


	async def drain_tasks (self) -> None:

		"""
		Wait for every coroutine listener scheduled so far.
		"""

		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)
