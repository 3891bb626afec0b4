"""Constants for beatgrid.

- ``beatgrid.constants.pulses`` - Pulse-based clock timing and note-value names
- ``beatgrid.constants.drums`` - General MIDI drum notes for the default kit

The most used pulse constants are re-exported here, so
``beatgrid.constants.PULSES_PER_BEAT`` works without the submodule import.
"""

PULSES_PER_BEAT = 24
SIXTEENTH_NOTE = 6
EIGHTH_NOTE = 12

DEFAULT_VELOCITY = 100
MIN_VELOCITY = 0
MAX_VELOCITY = 127
