"""Sound trigger backends.

The sequencer never makes sound itself.  On every tick it hands each active
instrument and the tick's scheduled time to a :class:`SoundTrigger`, which
turns it into something audible.  Three backends ship with beatgrid:

- :class:`MidiSoundTrigger` - note on/off to a MIDI output port (via ``mido``)
  for hardware drum machines, soft synths or a DAW.
- :class:`OscSoundTrigger` - ``/trigger`` and ``/note`` OSC messages (via
  ``python-osc``) for SuperCollider, Pure Data and similar engines.
- :class:`RecordingSoundTrigger` - keeps every hit in memory and can write a
  standard MIDI file.  Used for offline rendering and tests.

Output must be *unlocked* before the transport starts, mirroring browsers
that refuse to make sound until a user gesture.  For the MIDI backend that
means opening the port; if it cannot be opened, :meth:`SoundTrigger.unlock`
raises :class:`AudioUnlockError` and the transport stays stopped.

``trigger()`` and ``play_note()`` never raise: a backend that fails while
sending logs the error and carries on.
"""

import asyncio
import dataclasses
import functools
import logging
import typing

import mido
import pythonosc.udp_client

import beatgrid.constants
import beatgrid.constants.drums
import beatgrid.instrument
import beatgrid.midi_utils


logger = logging.getLogger(__name__)


class AudioUnlockError (RuntimeError):

	"""
	The output backend refused to open, so playback cannot start yet.
	"""


@typing.runtime_checkable
class SoundTrigger (typing.Protocol):

	"""
	Protocol for objects that can sound instruments and keyboard notes.
	"""

	@property
	def unlocked (self) -> bool:

		"""True once :meth:`unlock` has succeeded."""

		...

	async def unlock (self) -> None:

		"""
		Make the backend ready to sound.  Raises :class:`AudioUnlockError` on refusal.
		"""

		...

	def trigger (self, instrument: beatgrid.instrument.Instrument, scheduled_time: float) -> None:

		"""
		Sound *instrument* at clock time *scheduled_time*.
		"""

		...

	def play_note (self, pitch: int, duration: float) -> None:

		"""
		Play a pitched keyboard note for *duration* seconds.
		"""

		...


def _running_loop () -> typing.Optional[asyncio.AbstractEventLoop]:

	try:
		return asyncio.get_running_loop()
	except RuntimeError:
		return None


class MidiSoundTrigger:

	"""
	Sound instruments as MIDI notes on an output port.

	Drum hits go out on ``drum_channel`` (GM channel 10 by default) and last
	``gate`` seconds; keyboard notes go out on ``keyboard_channel``.
	"""

	def __init__ (
		self,
		output_device_name: typing.Optional[str] = None,
		drum_channel: int = beatgrid.constants.drums.DRUM_CHANNEL,
		keyboard_channel: int = 0,
		velocity: int = beatgrid.constants.DEFAULT_VELOCITY,
		gate: float = 0.05,
		prompt: bool = True
	) -> None:

		"""Configure the backend; the port is opened by :meth:`unlock`.

		Parameters:
			output_device_name: MIDI output to open.  When omitted the only
				available device is used, or the user is asked to choose.
			drum_channel: 0-indexed channel for grid instruments.
			keyboard_channel: 0-indexed channel for keyboard notes.
			velocity: Note-on velocity (0-127).
			gate: Drum note length in seconds.
			prompt: Allow an interactive device prompt when several outputs exist.
		"""

		if not 0 <= drum_channel <= 15 or not 0 <= keyboard_channel <= 15:
			raise ValueError("MIDI channels must be 0-15")

		if not beatgrid.constants.MIN_VELOCITY <= velocity <= beatgrid.constants.MAX_VELOCITY:
			raise ValueError("Velocity must be 0-127")

		if gate <= 0:
			raise ValueError("Gate must be positive")

		self.output_device_name = output_device_name
		self.drum_channel = drum_channel
		self.keyboard_channel = keyboard_channel
		self.velocity = velocity
		self.gate = gate
		self.prompt = prompt

		self.midi_out: typing.Any = None
		self.active_notes: typing.Set[typing.Tuple[int, int]] = set()


	@property
	def unlocked (self) -> bool:

		"""True while an output port is open."""

		return self.midi_out is not None


	async def unlock (self) -> None:

		"""
		Open the MIDI output port, or raise :class:`AudioUnlockError`.

		The event loop keeps running while a device is chosen.
		"""

		if self.midi_out is not None:
			return

		select = functools.partial(beatgrid.midi_utils.select_output_device, self.output_device_name, prompt=self.prompt)

		device_name, midi_out = await asyncio.get_running_loop().run_in_executor(None, select)

		if midi_out is None:
			raise AudioUnlockError(f"Could not open MIDI output {self.output_device_name or '(auto)'}")

		self.output_device_name = device_name
		self.midi_out = midi_out


	def trigger (self, instrument: beatgrid.instrument.Instrument, scheduled_time: float) -> None:

		"""
		Send a drum hit for *instrument*.
		"""

		self._play(self.drum_channel, instrument.note, self.gate)


	def play_note (self, pitch: int, duration: float) -> None:

		"""
		Send a keyboard note lasting *duration* seconds.
		"""

		self._play(self.keyboard_channel, pitch, duration)


	def _play (self, channel: int, pitch: int, duration: float) -> None:

		if self.midi_out is None:
			logger.debug(f"MIDI output locked - note {pitch} dropped")
			return

		if (channel, pitch) in self.active_notes:
			# Retrigger: end the sounding note first.
			self._send(mido.Message('note_off', channel=channel, note=pitch, velocity=0))
			self.active_notes.discard((channel, pitch))

		if not self._send(mido.Message('note_on', channel=channel, note=pitch, velocity=self.velocity)):
			return

		self.active_notes.add((channel, pitch))

		loop = _running_loop()

		if loop is None:
			self._note_off(channel, pitch)
		else:
			loop.call_later(duration, self._note_off, channel, pitch)


	def _note_off (self, channel: int, pitch: int) -> None:

		if (channel, pitch) not in self.active_notes:
			return

		self.active_notes.discard((channel, pitch))
		self._send(mido.Message('note_off', channel=channel, note=pitch, velocity=0))


	def _send (self, message: mido.Message) -> bool:

		if self.midi_out is None:
			return False

		try:
			self.midi_out.send(message)
			return True
		except Exception:
			logger.exception("MIDI send failed (device may be disconnected)")
			return False


	def close (self) -> None:

		"""
		End every sounding note and close the port.
		"""

		for channel, pitch in list(self.active_notes):
			self._send(mido.Message('note_off', channel=channel, note=pitch, velocity=0))

		self.active_notes.clear()

		if self.midi_out is not None:
			try:
				self.midi_out.close()
			except Exception:
				logger.exception("Failed to close MIDI output")
			self.midi_out = None


class OscSoundTrigger:

	"""
	Sound instruments by sending OSC messages to an audio engine.

	Sends ``/trigger <name> <scheduled_time>`` per hit and
	``/note <pitch> <duration>`` per keyboard note.
	"""

	def __init__ (self, host: str = "127.0.0.1", port: int = 57120) -> None:

		self.host = host
		self.port = port
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None


	@property
	def unlocked (self) -> bool:

		"""True once the UDP client exists."""

		return self._client is not None


	async def unlock (self) -> None:

		"""
		Create the UDP client, or raise :class:`AudioUnlockError`.
		"""

		if self._client is not None:
			return

		try:
			self._client = pythonosc.udp_client.SimpleUDPClient(self.host, self.port)
		except OSError as e:
			raise AudioUnlockError(f"Could not reach OSC engine at {self.host}:{self.port}: {e}") from e

		logger.info(f"OSC sound output to {self.host}:{self.port}")


	def trigger (self, instrument: beatgrid.instrument.Instrument, scheduled_time: float) -> None:

		"""
		Send ``/trigger`` for *instrument*.
		"""

		self._send("/trigger", instrument.name, float(scheduled_time))


	def play_note (self, pitch: int, duration: float) -> None:

		"""
		Send ``/note`` for a keyboard note.
		"""

		self._send("/note", int(pitch), float(duration))


	def _send (self, address: str, *args: typing.Any) -> None:

		if self._client is None:
			return

		try:
			self._client.send_message(address, list(args))
		except Exception as e:
			logger.warning(f"OSC send error: {e}")


@dataclasses.dataclass
class RecordedHit:

	"""
	One sound captured by :class:`RecordingSoundTrigger`.
	"""

	time: float
	note: int
	duration: float
	name: typing.Optional[str] = None
	channel: int = beatgrid.constants.drums.DRUM_CHANNEL


class RecordingSoundTrigger:

	"""
	Keep every trigger in memory, optionally writing them to a MIDI file.

	Keyboard notes have no clock time of their own, so they are stamped
	with the time of the most recent hit.
	"""

	def __init__ (self, fail_unlock: bool = False, gate: float = 0.05, keyboard_channel: int = 0) -> None:

		"""
		Parameters:
			fail_unlock: Make :meth:`unlock` raise, to simulate a refused output.
			gate: Length recorded for drum hits, in seconds.
			keyboard_channel: Channel recorded for keyboard notes.
		"""

		self.fail_unlock = fail_unlock
		self.gate = gate
		self.keyboard_channel = keyboard_channel
		self.hits: typing.List[RecordedHit] = []
		self.unlock_attempts = 0
		self._unlocked = False


	@property
	def unlocked (self) -> bool:

		"""True once :meth:`unlock` has succeeded."""

		return self._unlocked


	async def unlock (self) -> None:

		"""
		Succeed, or raise :class:`AudioUnlockError` when ``fail_unlock`` is set.
		"""

		self.unlock_attempts += 1

		if self.fail_unlock:
			raise AudioUnlockError("Recording output refused to unlock")

		self._unlocked = True


	def trigger (self, instrument: beatgrid.instrument.Instrument, scheduled_time: float) -> None:

		"""
		Record a drum hit.
		"""

		self.hits.append(RecordedHit(time=scheduled_time, note=instrument.note, duration=self.gate, name=instrument.name))


	def play_note (self, pitch: int, duration: float) -> None:

		"""
		Record a keyboard note.
		"""

		time = self.hits[-1].time if self.hits else 0.0
		self.hits.append(RecordedHit(time=time, note=pitch, duration=duration, channel=self.keyboard_channel))


	def save (self, filename: str, bpm: float) -> None:

		"""Write the recorded hits to a type 0 MIDI file.

		Clock seconds are converted to ticks at *bpm* with 480 ticks per beat.
		"""

		ticks_per_beat = 480
		tempo = mido.bpm2tempo(bpm)

		timed: typing.List[typing.Tuple[int, int, mido.Message]] = []

		for hit in self.hits:
			start = int(round(mido.second2tick(hit.time, ticks_per_beat, tempo)))
			end = int(round(mido.second2tick(hit.time + hit.duration, ticks_per_beat, tempo)))
			end = max(end, start + 1)

			# note_off sorts before note_on at the same tick so retriggers stay paired.
			timed.append((start, 1, mido.Message('note_on', channel=hit.channel, note=hit.note, velocity=beatgrid.constants.DEFAULT_VELOCITY)))
			timed.append((end, 0, mido.Message('note_off', channel=hit.channel, note=hit.note, velocity=0)))

		timed.sort(key=lambda item: (item[0], item[1]))

		mid = mido.MidiFile(type=0, ticks_per_beat=ticks_per_beat)
		track = mido.MidiTrack()
		mid.tracks.append(track)
		track.append(mido.MetaMessage('set_tempo', tempo=tempo, time=0))

		last_tick = 0

		for tick, _, message in timed:
			message.time = tick - last_tick
			track.append(message)
			last_tick = tick

		logger.info(f"Saving {len(self.hits)} hits to {filename}...")

		mid.save(filename)

		logger.info(f"Saved {filename}")
