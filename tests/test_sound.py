import asyncio
import pathlib
import threading

import mido
import pytest
import pythonosc.dispatcher
import pythonosc.osc_server

import beatgrid.instrument
import beatgrid.midi_utils
import beatgrid.sound


KICK = beatgrid.instrument.Instrument("kick", "Kick", 36)


def test_recording_backend_satisfies_protocol (recorder: beatgrid.sound.RecordingSoundTrigger) -> None:

	assert isinstance(recorder, beatgrid.sound.SoundTrigger)
	assert isinstance(beatgrid.sound.MidiSoundTrigger(), beatgrid.sound.SoundTrigger)
	assert isinstance(beatgrid.sound.OscSoundTrigger(), beatgrid.sound.SoundTrigger)


@pytest.mark.asyncio
async def test_midi_unlock_opens_port (patch_midi: None) -> None:

	sound = beatgrid.sound.MidiSoundTrigger(output_device_name="Dummy MIDI")

	assert sound.unlocked is False

	await sound.unlock()

	assert sound.unlocked is True
	assert sound.midi_out.name == "Dummy MIDI"


@pytest.mark.asyncio
async def test_midi_unlock_fails_without_devices (monkeypatch: pytest.MonkeyPatch) -> None:

	monkeypatch.setattr(mido, "get_output_names", lambda: [])

	sound = beatgrid.sound.MidiSoundTrigger()

	with pytest.raises(beatgrid.sound.AudioUnlockError):
		await sound.unlock()

	assert sound.unlocked is False


@pytest.mark.asyncio
async def test_midi_unlock_prompt_leaves_loop_running (monkeypatch: pytest.MonkeyPatch) -> None:

	"""While the console waits for a device choice, other tasks keep running."""

	monkeypatch.setattr(mido, "get_output_names", lambda: ["A", "B"])
	monkeypatch.setattr(mido, "open_output", lambda name: f"port:{name}")

	loop_ran = threading.Event()

	def answer (prompt: str) -> str:
		assert loop_ran.wait(timeout=5)
		return "2"

	monkeypatch.setattr("builtins.input", answer)

	sound = beatgrid.sound.MidiSoundTrigger()
	unlock = asyncio.get_running_loop().create_task(sound.unlock())

	await asyncio.sleep(0)
	loop_ran.set()
	await unlock

	assert sound.output_device_name == "B"
	assert sound.midi_out == "port:B"


@pytest.mark.asyncio
async def test_midi_unlock_fails_for_unknown_device (patch_midi: None) -> None:

	sound = beatgrid.sound.MidiSoundTrigger(output_device_name="Nope")

	with pytest.raises(beatgrid.sound.AudioUnlockError):
		await sound.unlock()


@pytest.mark.asyncio
async def test_midi_trigger_sends_note_on_then_off (patch_midi: None) -> None:

	sound = beatgrid.sound.MidiSoundTrigger(gate=0.02)
	await sound.unlock()

	sound.trigger(KICK, 0.0)

	sent = sound.midi_out.sent

	assert [(m.type, m.channel, m.note) for m in sent] == [("note_on", 9, 36)]
	assert sound.active_notes == {(9, 36)}

	await asyncio.sleep(0.1)

	assert [(m.type, m.channel, m.note) for m in sent] == [("note_on", 9, 36), ("note_off", 9, 36)]
	assert sound.active_notes == set()


@pytest.mark.asyncio
async def test_midi_retrigger_ends_sounding_note (patch_midi: None) -> None:

	sound = beatgrid.sound.MidiSoundTrigger(gate=1.0)
	await sound.unlock()

	sound.trigger(KICK, 0.0)
	sound.trigger(KICK, 0.125)

	assert [m.type for m in sound.midi_out.sent] == ["note_on", "note_off", "note_on"]

	port = sound.midi_out
	sound.close()

	assert [m.type for m in port.sent][-1] == "note_off"
	assert port.closed is True
	assert sound.unlocked is False


@pytest.mark.asyncio
async def test_midi_keyboard_note_uses_keyboard_channel (patch_midi: None) -> None:

	sound = beatgrid.sound.MidiSoundTrigger(keyboard_channel=2)
	await sound.unlock()

	sound.play_note(64, 0.25)

	assert (sound.midi_out.sent[0].channel, sound.midi_out.sent[0].note) == (2, 64)


def test_midi_trigger_while_locked_is_dropped () -> None:

	sound = beatgrid.sound.MidiSoundTrigger()

	sound.trigger(KICK, 0.0)

	assert sound.active_notes == set()


def test_midi_validation () -> None:

	with pytest.raises(ValueError):
		beatgrid.sound.MidiSoundTrigger(drum_channel=16)

	with pytest.raises(ValueError):
		beatgrid.sound.MidiSoundTrigger(velocity=128)

	with pytest.raises(ValueError):
		beatgrid.sound.MidiSoundTrigger(gate=0)


@pytest.mark.asyncio
async def test_osc_backend_sends_trigger_and_note () -> None:

	received: list[tuple] = []

	dispatcher = pythonosc.dispatcher.Dispatcher()
	dispatcher.map("/trigger", lambda address, *args: received.append((address, *args)))
	dispatcher.map("/note", lambda address, *args: received.append((address, *args)))

	server = pythonosc.osc_server.AsyncIOOSCUDPServer(("127.0.0.1", 0), dispatcher, asyncio.get_event_loop())
	transport, _ = await server.create_serve_endpoint()
	port = transport.get_extra_info("sockname")[1]

	sound = beatgrid.sound.OscSoundTrigger("127.0.0.1", port)
	await sound.unlock()

	sound.trigger(KICK, 0.5)
	sound.play_note(60, 0.25)

	await asyncio.sleep(0.1)

	assert received == [("/trigger", "kick", 0.5), ("/note", 60, 0.25)]

	transport.close()


@pytest.mark.asyncio
async def test_recording_unlock_can_fail () -> None:

	sound = beatgrid.sound.RecordingSoundTrigger(fail_unlock=True)

	with pytest.raises(beatgrid.sound.AudioUnlockError):
		await sound.unlock()

	assert sound.unlocked is False
	assert sound.unlock_attempts == 1


def test_recording_save_writes_hits_at_tempo (tmp_path: pathlib.Path, recorder: beatgrid.sound.RecordingSoundTrigger) -> None:

	"""Saved notes land on the tick matching their clock time at the given tempo."""

	recorder.trigger(KICK, 0.0)
	recorder.trigger(KICK, 0.5)
	recorder.play_note(72, 0.25)

	filename = str(tmp_path / "hits.mid")
	recorder.save(filename, 120)

	mid = mido.MidiFile(filename)

	assert mid.type == 0
	assert mid.ticks_per_beat == 480

	now = 0
	note_ons: list[tuple] = []

	for msg in mid.tracks[0]:
		now += msg.time
		if msg.type == "note_on":
			note_ons.append((now, msg.channel, msg.note))

	assert note_ons == [(0, 9, 36), (480, 9, 36), (480, 0, 72)]
	assert mid.tracks[0][0].type == "set_tempo"


def test_select_output_device_choices (monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:

	"""Several outputs: the first without a prompt, otherwise the one the user picks."""

	monkeypatch.setattr(mido, "get_output_names", lambda: ["A", "B"])
	monkeypatch.setattr(mido, "open_output", lambda name: f"port:{name}")

	assert beatgrid.midi_utils.select_output_device(prompt=False) == ("A", "port:A")
	assert beatgrid.midi_utils.select_output_device("B") == ("B", "port:B")
	assert beatgrid.midi_utils.select_output_device("C") == (None, None)

	answers = iter(["x", "7", "2"])
	monkeypatch.setattr("builtins.input", lambda prompt: next(answers))

	assert beatgrid.midi_utils.select_output_device() == ("B", "port:B")
	assert "output_device" in capsys.readouterr().out
