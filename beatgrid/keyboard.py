import logging
import re
import typing

import beatgrid.constants.pulses
import beatgrid.sound


logger = logging.getLogger(__name__)

_NOTE_PATTERN = re.compile(r"^([A-Ga-g])([#b]?)(-?\d+)$")
_PITCH_CLASSES = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}


def note_to_midi (name: str) -> int:

	"""Convert a note name to a MIDI note number (C4 = 60).

	Examples: ``"C4"`` -> 60, ``"F#2"`` -> 42, ``"Bb3"`` -> 58.

	Raises:
		ValueError: If the name cannot be parsed or falls outside 0-127.
	"""

	match = _NOTE_PATTERN.match(name.strip())

	if match is None:
		raise ValueError(f"Invalid note name: {name!r}")

	letter, accidental, octave = match.groups()
	pitch = (int(octave) + 1) * 12 + _PITCH_CLASSES[letter.upper()]

	if accidental == "#":
		pitch += 1
	elif accidental == "b":
		pitch -= 1

	if not 0 <= pitch <= 127:
		raise ValueError(f"Note {name!r} is outside the MIDI range")

	return pitch


class Keyboard:

	"""
	A playable row of keys, sounding through the session's output.

	Each key press plays for an eighth note at the current tempo.  The output
	is unlocked on the first press, the same way the transport unlocks it
	on play.
	"""

	def __init__ (
		self,
		sound: beatgrid.sound.SoundTrigger,
		notes: typing.Sequence[str],
		tempo: typing.Callable[[], float],
		note_value: typing.Union[str, int] = "8n"
	) -> None:

		"""
		Parameters:
			sound: Output used for the notes.
			notes: Key names, left to right (``"C4"``, ``"D4"``...).
			tempo: Returns the current tempo in BPM.
			note_value: Length of each note (``"8n"`` = eighth note).
		"""

		if not notes:
			raise ValueError("Keyboard needs at least one note")

		self.sound = sound
		self.notes: typing.Tuple[str, ...] = tuple(notes)
		self.pitches: typing.Dict[str, int] = {note: note_to_midi(note) for note in self.notes}
		self._tempo = tempo
		self.note_pulses = beatgrid.constants.pulses.note_value_pulses(note_value)


	@property
	def labels (self) -> typing.List[str]:

		"""Key captions: the note letter without its octave."""

		return [re.sub(r"-?\d+$", "", note) for note in self.notes]


	def note_duration (self) -> float:

		"""
		Length of one key press at the current tempo, in seconds.
		"""

		return beatgrid.constants.pulses.interval_seconds(self.note_pulses, self._tempo())


	async def press (self, note: str) -> int:

		"""Play *note*, unlocking the output first if needed.

		Returns the MIDI pitch played.  Raises ``ValueError`` for a note that
		is not on the keyboard and :class:`beatgrid.sound.AudioUnlockError`
		when the output refuses to open.
		"""

		if note not in self.pitches:
			raise ValueError(f"{note!r} is not on the keyboard ({', '.join(self.notes)})")

		await self.sound.unlock()

		pitch = self.pitches[note]
		duration = self.note_duration()

		try:
			self.sound.play_note(pitch, duration)
		except Exception:
			logger.exception(f"Keyboard note {note} failed")

		logger.debug(f"Key {note} ({pitch}) for {duration:.3f}s")

		return pitch
