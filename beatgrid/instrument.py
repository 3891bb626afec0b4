import dataclasses
import typing

import beatgrid.constants.drums


@dataclasses.dataclass (frozen=True)
class Instrument:

	"""
	One row of the step grid: an identifier, a display label, and the MIDI note it plays.
	"""

	name: str
	label: str
	note: int = beatgrid.constants.drums.KICK

	def __post_init__ (self) -> None:

		"""
		Reject empty names and notes outside the MIDI range.
		"""

		if not self.name:
			raise ValueError("Instrument name cannot be empty")

		if not 0 <= self.note <= 127:
			raise ValueError(f"Instrument {self.name!r} note must be 0-127, got {self.note}")


DEFAULT_KIT: typing.Tuple[Instrument, ...] = (
	Instrument("kick", "Kick", beatgrid.constants.drums.KICK),
	Instrument("snare", "Snare", beatgrid.constants.drums.SNARE),
	Instrument("hihat", "Hi-Hat", beatgrid.constants.drums.HI_HAT_CLOSED),
	Instrument("clap", "Clap", beatgrid.constants.drums.CLAP),
)


def make_instrument (entry: typing.Union[str, typing.Dict[str, typing.Any], Instrument]) -> Instrument:

	"""
	Build an instrument from a name, a config mapping, or an existing instrument.

	A bare name such as ``"snare"`` looks the note up in the GM drum map and
	uses the title-cased name as its label.
	"""

	if isinstance(entry, Instrument):
		return entry

	if isinstance(entry, str):
		name = entry
		fields: typing.Dict[str, typing.Any] = {}

	elif isinstance(entry, dict):
		if "name" not in entry:
			raise ValueError(f"Instrument entry needs a 'name': {entry!r}")
		name = str(entry["name"])
		fields = entry

	else:
		raise ValueError(f"Cannot build an instrument from {entry!r}")

	note = fields.get("note", beatgrid.constants.drums.DRUM_NOTE_MAP.get(name))

	if note is None:
		raise ValueError(f"Unknown drum {name!r}: give it an explicit 'note'")

	if isinstance(note, str):
		if note not in beatgrid.constants.drums.DRUM_NOTE_MAP:
			raise ValueError(f"Unknown drum note name {note!r} for instrument {name!r}")
		note = beatgrid.constants.drums.DRUM_NOTE_MAP[note]

	label = str(fields.get("label", name.replace("_", " ").title()))

	return Instrument(name=name, label=label, note=int(note))
