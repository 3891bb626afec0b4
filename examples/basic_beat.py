"""
beatgrid - basic beat

An eight-step sixteenth-note pattern on the default kit: kick on the
downbeats, snare on the backbeats, closed hats on every other step.  The
terminal grid shows the pattern and the step that is sounding.

How to run
──────────
1. Connect a drum machine or soft synth listening on MIDI channel 10.
2. Set MIDI_DEVICE below (or leave it as None to pick from a list).
3. Run: python examples/basic_beat.py
4. Press Ctrl+C to stop.

Send OSC to port 9000 while it plays:  /bpm 140,  /toggle 3 6,  /stop.
"""

import logging

import beatgrid


logging.basicConfig(level=logging.INFO)

MIDI_DEVICE = None

config = beatgrid.SessionConfig(
	initial_bpm = 112,
	output_device = MIDI_DEVICE,
	autoplay = True,
	pattern = {
		"kick":  "x...x...",
		"snare": "..x...x.",
		"hihat": "x.x.x.x.",
	}
)

session = beatgrid.Session(config)

if __name__ == "__main__":

	session.display()
	session.osc()
	session.play()
