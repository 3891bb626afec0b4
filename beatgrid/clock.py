"""Tempo-driven transport clock.

The clock turns a tempo into a stream of scheduled tick times.  Each
subscription fires its callback once per subdivision, passing the *scheduled*
clock time of that tick rather than the moment the callback happened to run,
so everything triggered from one tick lines up exactly.

Clock time is measured in seconds from the moment the clock was started.

Tempo changes are anchored at the last tick that fired: the next tick is due
one subdivision *at the new tempo* after it.  Nothing is restarted, so no tick
is repeated or skipped at the moment of the change.

Two modes:

- **realtime** (default): an asyncio task sleeps until the next tick is due,
  using a hybrid sleep+spin wait for the final sub-millisecond.
- **offline** (``realtime=False``): nothing fires on its own; the caller moves
  time forward with :meth:`TransportClock.advance` or
  :meth:`TransportClock.run_until`.  Used for rendering and tests.
"""

import asyncio
import dataclasses
import itertools
import logging
import time
import typing

import beatgrid.constants.pulses


logger = logging.getLogger(__name__)

TickCallback = typing.Callable[[float], typing.Any]


@dataclasses.dataclass (eq=False)
class Subscription:

	"""
	Handle for one repeating callback.

	Returned by :meth:`TransportClock.schedule_repeating`.  The owner keeps it
	and hands the same object back to :meth:`TransportClock.cancel`.
	"""

	id: int
	callback: TickCallback
	interval_pulses: int
	next_fire_time: typing.Optional[float] = None
	last_fire_time: typing.Optional[float] = None
	fire_count: int = 0
	active: bool = True


class TransportClock:

	"""
	Periodic callback source running at a tempo in BPM.
	"""

	def __init__ (
		self,
		initial_bpm: float = 120,
		realtime: bool = True,
		spin_wait: bool = True,
	) -> None:

		"""Create a stopped clock.

		Parameters:
			initial_bpm: Starting tempo.
			realtime: When False the clock never sleeps or fires on its own;
				time is moved forward by :meth:`advance` / :meth:`run_until`.
			spin_wait: When True (default), sleep to within ``_spin_threshold``
				of each tick and busy-wait the remainder for tighter timing.
		"""

		self.realtime = realtime
		self.pulses_per_beat = beatgrid.constants.pulses.PULSES_PER_BEAT
		self.running = False

		self._subscriptions: typing.List[Subscription] = []
		self._ids = itertools.count(1)
		self._task: typing.Optional[asyncio.Task] = None
		self._wakeup = asyncio.Event()
		self._origin = 0.0
		self._offline_time = 0.0

		self._spin_wait = spin_wait
		# Sleep all the way to this many seconds before the target, then spin.
		self._spin_threshold: float = 0.001

		self.current_bpm: float = 0
		self.set_rate(initial_bpm)


	@property
	def subscriptions (self) -> typing.Tuple[Subscription, ...]:

		"""Active subscriptions."""

		return tuple(self._subscriptions)


	def time (self) -> float:

		"""
		Current clock time in seconds since :meth:`start`; ``0.0`` while stopped.
		"""

		if not self.running:
			return 0.0

		if not self.realtime:
			return self._offline_time

		return time.perf_counter() - self._origin


	def interval (self, pulses: int) -> float:

		"""
		Length of *pulses* pulses at the current tempo, in seconds.
		"""

		return beatgrid.constants.pulses.interval_seconds(pulses, self.current_bpm)


	def set_rate (self, bpm: float) -> None:

		"""
		Change the tempo immediately.

		Each subscription that has already fired is re-anchored so its next
		tick falls one interval, at the new tempo, after the last one it fired.
		"""

		if bpm <= 0:
			raise ValueError("BPM must be positive")

		self.current_bpm = bpm

		for subscription in self._subscriptions:
			if subscription.last_fire_time is not None:
				subscription.next_fire_time = subscription.last_fire_time + self.interval(subscription.interval_pulses)

		self._wakeup.set()

		logger.debug(f"Clock rate set to {self.current_bpm:.2f} BPM")


	def schedule_repeating (self, subdivision: int, callback: TickCallback) -> Subscription:

		"""
		Call *callback(scheduled_time)* every *subdivision* pulses.

		Subscriptions made while stopped fire first at time 0 when the clock
		starts; those made while running fire first at the current time.
		"""

		if subdivision <= 0:
			raise ValueError("Subdivision must be a positive number of pulses")

		subscription = Subscription(
			id = next(self._ids),
			callback = callback,
			interval_pulses = subdivision,
			next_fire_time = self.time() if self.running else None
		)

		self._subscriptions.append(subscription)
		self._wakeup.set()

		logger.debug(f"Subscription {subscription.id} every {subdivision} pulses")

		return subscription


	def cancel (self, subscription: Subscription) -> None:

		"""
		Stop a subscription from ever firing again.

		Raises ``ValueError`` if the subscription is not active on this clock.
		"""

		if subscription not in self._subscriptions:
			raise ValueError(f"Subscription {subscription.id} is not active on this clock")

		subscription.active = False
		self._subscriptions.remove(subscription)
		self._wakeup.set()

		logger.debug(f"Subscription {subscription.id} cancelled")


	def start (self) -> None:

		"""
		Start counting from time 0.

		In realtime mode this needs a running event loop; the tick loop runs
		as a task on it.
		"""

		if self.running:
			return

		loop = asyncio.get_running_loop() if self.realtime else None

		self._offline_time = 0.0
		self._origin = time.perf_counter()
		self.running = True

		for subscription in self._subscriptions:
			subscription.next_fire_time = 0.0
			subscription.last_fire_time = None

		if loop is not None:
			# An Event binds to the first loop that waits on it.
			self._wakeup = asyncio.Event()
			self._task = loop.create_task(self._run_loop())

		logger.info(f"Clock started at {self.current_bpm:.2f} BPM")


	def stop (self) -> None:

		"""
		Stop the clock.  No callback fires after this returns.
		"""

		if not self.running:
			return

		self.running = False

		if self._task is not None:
			self._task.cancel()
			self._task = None

		logger.info("Clock stopped")


	def advance (self, seconds: float) -> int:

		"""
		Offline mode: move time forward by *seconds* and fire every due tick.

		Returns the number of callbacks fired.
		"""

		return self.run_until(self._offline_time + seconds)


	def run_until (self, clock_time: float) -> int:

		"""
		Offline mode: move time forward to *clock_time* and fire every due tick.

		Returns the number of callbacks fired.
		"""

		if self.realtime:
			raise RuntimeError("run_until() is only available on an offline clock")

		if not self.running:
			return 0

		if clock_time < self._offline_time:
			raise ValueError("Clock time cannot move backwards")

		self._offline_time = clock_time

		return self._fire_due(clock_time)


	def _next_due (self) -> typing.Optional[Subscription]:

		"""Return the subscription with the earliest pending tick."""

		due: typing.Optional[Subscription] = None

		for subscription in self._subscriptions:
			if subscription.next_fire_time is None:
				continue
			if due is None or subscription.next_fire_time < typing.cast(float, due.next_fire_time):
				due = subscription

		return due


	def _fire_due (self, now: float) -> int:

		"""Fire every tick scheduled at or before *now*, earliest first.

		A late loop fires each missed tick in turn, each with its own
		scheduled time, so steps are never dropped.
		"""

		fired = 0

		while self.running:

			subscription = self._next_due()

			if subscription is None or typing.cast(float, subscription.next_fire_time) > now:
				break

			scheduled_time = typing.cast(float, subscription.next_fire_time)
			subscription.last_fire_time = scheduled_time
			subscription.next_fire_time = scheduled_time + self.interval(subscription.interval_pulses)
			subscription.fire_count += 1
			fired += 1

			try:
				subscription.callback(scheduled_time)
			except Exception:
				logger.exception(f"Clock callback for subscription {subscription.id} failed")

		return fired


	async def _run_loop (self) -> None:

		"""Realtime tick loop: fire what is due, then sleep until the next tick."""

		while self.running:

			self._wakeup.clear()
			self._fire_due(self.time())

			if not self.running:
				break

			due = self._next_due()

			if due is None:
				# Nothing subscribed; wait for a subscription or rate change.
				await self._wakeup.wait()
				continue

			target = typing.cast(float, due.next_fire_time)
			sleep_time = target - self.time()

			if sleep_time <= 0:
				await asyncio.sleep(0)
				continue

			coarse = sleep_time - self._spin_threshold if self._spin_wait else sleep_time

			if coarse > 0:
				try:
					await asyncio.wait_for(self._wakeup.wait(), timeout=coarse)
					# Woken early: the schedule changed, so recompute the target.
					continue
				except asyncio.TimeoutError:
					pass

			if self._spin_wait:
				while self.running and self.time() < target and not self._wakeup.is_set():
					pass
