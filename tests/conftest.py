import typing

import mido
import pytest

import beatgrid.session
import beatgrid.sound


class FakeMidiOut:

	"""MIDI output stub that keeps every message it is sent."""

	def __init__ (self, name: str = "Dummy MIDI") -> None:

		"""Start with an empty message log."""

		self.name = name
		self.sent: typing.List[mido.Message] = []
		self.closed = False


	def send (self, message: mido.Message) -> None:

		"""Record an outgoing MIDI message."""

		self.sent.append(message)


	def close (self) -> None:

		"""Mark the fake device closed."""

		self.closed = True


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	return FakeMidiOut(name)


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


class FakeSurface:

	"""Rendering surface that records every call as a tuple."""

	def __init__ (self) -> None:

		self.calls: typing.List[typing.Tuple[typing.Any, ...]] = []

	def highlight_step (self, step: int) -> None:
		self.calls.append(("highlight", step))

	def clear_highlight (self) -> None:
		self.calls.append(("clear",))

	def cell_changed (self, row: int, step: int, active: bool) -> None:
		self.calls.append(("cell", row, step, active))

	@property
	def highlights (self) -> typing.List[int]:

		"""Steps highlighted so far, in order."""

		return [call[1] for call in self.calls if call[0] == "highlight"]


@pytest.fixture
def surface () -> FakeSurface:

	"""A fresh recording surface."""

	return FakeSurface()


@pytest.fixture
def recorder () -> beatgrid.sound.RecordingSoundTrigger:

	"""An in-memory sound backend that always unlocks."""

	return beatgrid.sound.RecordingSoundTrigger()


@pytest.fixture
def offline_session (recorder: beatgrid.sound.RecordingSoundTrigger, surface: FakeSurface) -> beatgrid.session.Session:

	"""Default-kit session on an offline clock, recording its output and reporting to ``surface``."""

	session = beatgrid.session.Session(sound=recorder, realtime=False)
	session.reporter.add_surface(surface)

	return session
