"""General MIDI drum notes used by the default kit.

Standard percussion assignments for channel 10 (0-indexed channel 9).  Only
the sounds a small step-sequencer kit needs are listed; any other GM note can
be given to an instrument as a plain number.
"""

import typing


DRUM_CHANNEL = 9

KICK = 36
SIDE_STICK = 37
SNARE = 38
CLAP = 39
HI_HAT_CLOSED = 42
HI_HAT_PEDAL = 44
HI_HAT_OPEN = 46
CRASH = 49
RIDE = 51
TAMBOURINE = 54
COWBELL = 56


DRUM_NOTE_MAP: typing.Dict[str, int] = {
	"kick": KICK,
	"side_stick": SIDE_STICK,
	"snare": SNARE,
	"clap": CLAP,
	"hihat": HI_HAT_CLOSED,
	"hi_hat_closed": HI_HAT_CLOSED,
	"hi_hat_pedal": HI_HAT_PEDAL,
	"hi_hat_open": HI_HAT_OPEN,
	"crash": CRASH,
	"ride": RIDE,
	"tambourine": TAMBOURINE,
	"cowbell": COWBELL,
}
