"""Session configuration.

A session is built from a :class:`SessionConfig`.  The defaults give the
classic four-piece kit on an eight-step sixteenth-note grid at 120 BPM,
adjustable between 60 and 180 BPM.  The same settings can be read from a
YAML file::

	step_count: 16
	initial_bpm: 96
	tempo_min: 60
	tempo_max: 180
	subdivision: 16n
	instruments:
	  - kick
	  - snare
	  - {name: hihat, label: "Hi-Hat", note: 42}
	  - {name: rim, note: side_stick}
	pattern:
	  kick:  "x...x...x...x..."
	  snare: [4, 12]
	output_device: "IAC Driver Bus 1"
	osc: {receive_port: 9000, send_port: 9001}
	web: {port: 8765}
	display: {enabled: true}
	autoplay: false
"""

import dataclasses
import logging
import os
import typing

import yaml

import beatgrid.constants.pulses
import beatgrid.instrument


logger = logging.getLogger(__name__)

DEFAULT_KEYBOARD_NOTES: typing.Tuple[str, ...] = ("C4", "D4", "E4", "F4", "G4", "A4", "B4", "C5")


@dataclasses.dataclass
class SessionConfig:

	"""
	Everything fixed when a session is created.
	"""

	instruments: typing.List[beatgrid.instrument.Instrument] = dataclasses.field(default_factory=lambda: list(beatgrid.instrument.DEFAULT_KIT))
	step_count: int = 8
	tempo_min: int = 60
	tempo_max: int = 180
	initial_bpm: int = 120
	subdivision: int = beatgrid.constants.pulses.SIXTEENTH_NOTE
	keyboard_notes: typing.List[str] = dataclasses.field(default_factory=lambda: list(DEFAULT_KEYBOARD_NOTES))
	pattern: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
	output_device: typing.Optional[str] = None
	osc: typing.Optional[typing.Dict[str, typing.Any]] = None
	web: typing.Optional[typing.Dict[str, typing.Any]] = None
	display: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
	autoplay: bool = False

	def __post_init__ (self) -> None:

		"""
		Validate ranges that every later component relies on.
		"""

		if not self.instruments:
			raise ValueError("At least one instrument is required")

		if self.step_count <= 0:
			raise ValueError("step_count must be positive")

		if self.tempo_min <= 0 or self.tempo_min > self.tempo_max:
			raise ValueError(f"Invalid tempo range: {self.tempo_min}-{self.tempo_max}")

		if self.subdivision <= 0:
			raise ValueError("subdivision must be a positive number of pulses")

		if not self.tempo_min <= self.initial_bpm <= self.tempo_max:
			logger.warning(f"initial_bpm {self.initial_bpm} outside {self.tempo_min}-{self.tempo_max}; it will be clamped")


	@property
	def tempo_range (self) -> typing.Tuple[int, int]:

		"""``(tempo_min, tempo_max)``."""

		return (self.tempo_min, self.tempo_max)


	@classmethod
	def from_dict (cls, data: typing.Optional[typing.Mapping[str, typing.Any]]) -> "SessionConfig":

		"""
		Build a config from a parsed mapping such as a loaded YAML document.

		Raises ``ValueError`` on unknown keys or invalid values.
		"""

		data = dict(data or {})

		known = {field.name for field in dataclasses.fields(cls)}
		unknown = sorted(set(data) - known)

		if unknown:
			raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

		kwargs: typing.Dict[str, typing.Any] = {}

		if "instruments" in data:
			entries = data.pop("instruments")
			if not isinstance(entries, list):
				raise ValueError("instruments must be a list")
			kwargs["instruments"] = [beatgrid.instrument.make_instrument(entry) for entry in entries]

		if "subdivision" in data:
			kwargs["subdivision"] = beatgrid.constants.pulses.note_value_pulses(data.pop("subdivision"))

		for name in ("step_count", "tempo_min", "tempo_max", "initial_bpm"):
			if name in data:
				try:
					kwargs[name] = int(data.pop(name))
				except (TypeError, ValueError):
					raise ValueError(f"{name} must be a whole number") from None

		if "keyboard_notes" in data:
			kwargs["keyboard_notes"] = [str(note) for note in data.pop("keyboard_notes")]

		if "pattern" in data:
			pattern = data.pop("pattern") or {}
			if not isinstance(pattern, dict):
				raise ValueError("pattern must map instrument names to steps")
			kwargs["pattern"] = pattern

		if "display" in data:
			display = data.pop("display")
			kwargs["display"] = display if isinstance(display, dict) else {"enabled": bool(display)}

		kwargs.update(data)

		return cls(**kwargs)


def load_config (config_path: str = "beatgrid.yaml") -> SessionConfig:

	"""
	Load a session config from a YAML file, or the defaults if it is missing.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return SessionConfig()

	with open(config_path, "r") as f:
		data = yaml.safe_load(f)

	if data is not None and not isinstance(data, dict):
		raise ValueError(f"Config file {config_path} must contain a mapping")

	logger.info(f"Loaded config from {config_path}")

	return SessionConfig.from_dict(data)
