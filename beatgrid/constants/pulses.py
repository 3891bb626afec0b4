"""Pulse-based clock timing.

The transport clock counts **24 pulses per quarter note** (PPQN = 24).  A
subscription's subdivision is given in pulses, so a sixteenth-note step grid
fires every 6 pulses.

Note values can also be written the way most browser audio libraries spell
them (``"16n"``, ``"8n"``, ``"4n"``, with an optional ``"t"`` suffix for
triplets); :func:`note_value_pulses` converts them.
"""

import typing


PULSES_PER_BEAT = 24

THIRTYSECOND_NOTE = 3
SIXTEENTH_NOTE = 6
EIGHTH_NOTE = 12
QUARTER_NOTE = 24
HALF_NOTE = 48
WHOLE_NOTE = 96

_NOTE_VALUES: typing.Dict[str, int] = {
	"32n": THIRTYSECOND_NOTE,
	"16n": SIXTEENTH_NOTE,
	"8n": EIGHTH_NOTE,
	"4n": QUARTER_NOTE,
	"2n": HALF_NOTE,
	"1n": WHOLE_NOTE,
}


def note_value_pulses (value: typing.Union[str, int]) -> int:

	"""Convert a note value (``"16n"``, ``"8t"``) or a pulse count to pulses.

	Triplet values (``"8t"``) last two thirds of the straight value.

	Raises:
		ValueError: If the value is unknown or not a positive whole number of pulses.
	"""

	if isinstance(value, bool):
		raise ValueError(f"Invalid note value: {value!r}")

	if isinstance(value, int):
		if value <= 0:
			raise ValueError("Subdivision must be a positive number of pulses")
		return value

	text = str(value).strip().lower()

	if text.endswith("t"):
		straight = _NOTE_VALUES.get(text[:-1] + "n")

		if straight is None or (straight * 2) % 3 != 0:
			raise ValueError(f"Unknown note value: {value!r}")

		return straight * 2 // 3

	if text not in _NOTE_VALUES:
		raise ValueError(f"Unknown note value: {value!r}")

	return _NOTE_VALUES[text]


def interval_seconds (pulses: int, bpm: float) -> float:

	"""Length of *pulses* clock pulses at *bpm*, in seconds."""

	if bpm <= 0:
		raise ValueError("BPM must be positive")

	# Single division keeps common grids (0.125 s at 120 BPM) exact.
	return pulses * 60.0 / (bpm * PULSES_PER_BEAT)
