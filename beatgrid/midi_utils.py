import logging
import typing

import mido


logger = logging.getLogger(__name__)


def select_output_device (device_name: typing.Optional[str] = None, prompt: bool = True) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""
	Select and open a MIDI output device.

	If `device_name` is provided, attempts to open that specific device.
	If `device_name` is None, auto-discovers available devices:
	- If exactly one device exists, it is selected automatically.
	- If several exist and `prompt` is True, asks on the console which to use;
	  with `prompt` False the first one is used.
	- If no devices exist, logs an error and returns None.

	Returns:
		A tuple of (device_name, midi_out_object) or (None, None) on failure.
	"""

	try:
		outputs = mido.get_output_names()
		logger.info(f"Available MIDI outputs: {outputs}")

		if not outputs:
			logger.error("No MIDI output devices found.")
			return None, None

		if device_name is not None:

			if device_name not in outputs:
				logger.error(f"MIDI output device '{device_name}' not found. Available devices: {outputs}")
				return None, None

			midi_out = mido.open_output(device_name)
			logger.info(f"Opened MIDI output: {device_name}")
			return device_name, midi_out

		if len(outputs) == 1 or not prompt:
			selected_name = outputs[0]
			midi_out = mido.open_output(selected_name)
			logger.info(f"Using MIDI output '{selected_name}'")
			return selected_name, midi_out

		print("\nAvailable MIDI output devices:\n")
		for i, name in enumerate(outputs, 1):
			print(f"  {i}. {name}")
		print()

		while True:
			try:
				choice = int(input(f"Select a device (1-{len(outputs)}): "))
				if 1 <= choice <= len(outputs):
					break
			except (ValueError, EOFError):
				pass
			print(f"Enter a number between 1 and {len(outputs)}.")

		selected_name = outputs[choice - 1]
		midi_out = mido.open_output(selected_name)
		logger.info(f"Opened MIDI output: {selected_name}")

		print("\nTip: To skip this prompt, set the device in your config:\n")
		print(f"  output_device: \"{selected_name}\"\n")

		return selected_name, midi_out

	except Exception as e:
		logger.error(f"Failed to open MIDI output: {e}")
		return None, None
