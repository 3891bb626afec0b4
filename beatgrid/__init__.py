"""
beatgrid - a step sequencer and melody keyboard for Python.

Toggle cells in an instrument-by-step grid to build a repeating drum
pattern, set the tempo, start and stop the transport, and play notes on a
one-octave keyboard.  beatgrid makes no sound itself: hits go out as MIDI
notes (to a drum machine, soft synth or DAW), as OSC messages (to an audio
engine), or into a MIDI file.

The core:

- **Pattern store.** A boolean matrix, one row per instrument and one
  column per step.  It is the only record of which cells are active.
- **Transport clock.** Tempo-driven ticks at a fixed subdivision (sixteenth
  notes by default).  Each tick carries its scheduled clock time, so
  everything in one step sounds together.  Tempo changes take effect from
  the last tick without dropping or repeating a step.
- **Sequencer controller.** On each tick: report the step about to sound,
  trigger its active cells, advance and wrap the cursor.
- **Transport control.** A strict stopped/running state machine.  Start
  waits for the output to unlock and subscribes exactly once; stop cancels
  exactly that subscription.
- **Dispatcher.** Clicks, tempo moves and clock ticks are messages handled
  one at a time on a single loop.

Surfaces: a live terminal grid (``session.display()``), OSC control
(``session.osc()``), and a WebSocket bridge for browser front ends
(``session.web_ui()``).

Minimal example:

```python
import beatgrid

session = beatgrid.Session()
session.store.load_rows({"kick": "x...x...", "snare": "..x...x."})
session.config.autoplay = True
session.display()
session.play()
```

Package-level exports: ``Session``, ``SessionConfig``, ``load_config``,
``Instrument``, ``PatternStore``, ``TransportClock``, ``TransportControl``,
``SequencerController``, ``StepHighlightReporter``, ``Dispatcher``,
``InvalidIndexError``, ``AudioUnlockError``.
"""

from beatgrid.clock import TransportClock
from beatgrid.config import SessionConfig, load_config
from beatgrid.dispatch import Dispatcher
from beatgrid.highlight import StepHighlightReporter
from beatgrid.instrument import Instrument
from beatgrid.pattern import InvalidIndexError, PatternStore
from beatgrid.sequencer import SequencerController
from beatgrid.session import Session
from beatgrid.sound import AudioUnlockError
from beatgrid.transport import TransportControl
