"""Live terminal grid for a playing session.

Shows the pattern with one row per instrument, a marker under the step that
is sounding, and a status line with tempo and transport state.  Log messages
scroll above the grid without disrupting it.

Enable it with a single call before ``play()``:

```python
session.display()
session.play()
```

The grid looks like::

	  Kick        |X . . . X . . .|
	  Snare       |. . . . X . . .|
	              |        ^      |
	120 BPM  Step: 5/8  [playing]
"""

import logging
import shutil
import sys
import typing

if typing.TYPE_CHECKING:
	from beatgrid.session import Session


_LABEL_WIDTH = 12
_MIN_TERMINAL_WIDTH = 24


class DisplayLogHandler (logging.Handler):

	"""Logging handler that clears and redraws the grid around log output.

	Installed by ``Display.start()`` and removed by ``Display.stop()``.
	"""

	def __init__ (self, display: "Display") -> None:

		"""Store reference to the display for clear/redraw calls."""

		super().__init__()
		self._display = display

	def emit (self, record: logging.LogRecord) -> None:

		"""Clear the grid, write the log message, then redraw."""

		try:
			self._display.clear_lines()

			msg = self.format(record)
			sys.stderr.write(msg + "\n")
			sys.stderr.flush()

			self._display.draw()

		except Exception:
			self.handleError(record)


class Display:

	"""Terminal rendering surface for a session.

	Implements :class:`beatgrid.highlight.RenderingSurface`: the session's
	reporter calls :meth:`highlight_step`, :meth:`clear_highlight` and
	:meth:`cell_changed`, and the display redraws.  Cell states are read
	from the session's pattern store at draw time, never cached.
	"""

	def __init__ (self, session: "Session") -> None:

		"""Store the session whose grid and transport are shown."""

		self._session = session
		self._active: bool = False
		self._handler: typing.Optional[DisplayLogHandler] = None
		self._saved_handlers: typing.List[logging.Handler] = []
		self._current_step: typing.Optional[int] = None
		self._lines: typing.List[str] = []
		self._drawn_line_count: int = 0

	def start (self) -> None:

		"""Install the log handler and draw the grid.

		Existing root logger handlers are saved and replaced by a
		``DisplayLogHandler``; ``stop()`` puts them back.
		"""

		if self._active:
			return

		self._active = True

		root_logger = logging.getLogger()
		self._saved_handlers = list(root_logger.handlers)
		self._handler = DisplayLogHandler(self)

		if self._saved_handlers and self._saved_handlers[0].formatter:
			self._handler.setFormatter(self._saved_handlers[0].formatter)
		else:
			self._handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))

		root_logger.handlers.clear()
		root_logger.addHandler(self._handler)

		self.update()

	def stop (self) -> None:

		"""Erase the grid and restore the original log handlers."""

		if not self._active:
			return

		self.clear_lines()
		self._active = False

		root_logger = logging.getLogger()
		root_logger.handlers.clear()

		for handler in self._saved_handlers:
			root_logger.addHandler(handler)

		self._saved_handlers = []
		self._handler = None

	# ------------------------------------------------------------------
	# RenderingSurface
	# ------------------------------------------------------------------

	def highlight_step (self, step: int) -> None:

		"""Move the step marker to *step*."""

		self._current_step = step
		self.update()

	def clear_highlight (self) -> None:

		"""Hide the step marker."""

		self._current_step = None
		self.update()

	def cell_changed (self, row: int, step: int, active: bool) -> None:

		"""Redraw after a cell edit."""

		self.update()

	# ------------------------------------------------------------------
	# Rendering
	# ------------------------------------------------------------------

	def build_lines (self) -> typing.List[str]:

		"""Return the grid rows, marker row and status line as text."""

		store = self._session.store
		term_width = shutil.get_terminal_size(fallback=(80, 24)).columns

		lines: typing.List[str] = []

		if term_width >= _MIN_TERMINAL_WIDTH:

			display_cols = self._fit_columns(store.step_count, term_width)

			for row, instrument in enumerate(store.instruments):
				label = instrument.label[:_LABEL_WIDTH].ljust(_LABEL_WIDTH)
				cells = " ".join("X" if active else "." for active in store.row_cells(row)[:display_cols])
				lines.append(f"  {label}|{cells}|")

			marker = [" "] * display_cols

			if self._current_step is not None and self._current_step < display_cols:
				marker[self._current_step] = "^"

			lines.append(f"  {' ' * _LABEL_WIDTH}|{' '.join(marker)}|")

		lines.append(self._format_status())

		return lines

	def _format_status (self) -> str:

		"""Build the status string from the transport state."""

		state = self._session.state
		parts = [f"{state.tempo_bpm} BPM"]

		if self._current_step is not None:
			parts.append(f"Step: {self._current_step + 1}/{state.step_count}")

		parts.append("[playing]" if state.running else "[stopped]")

		return "  ".join(parts)

	@staticmethod
	def _fit_columns (step_count: int, term_width: int) -> int:

		"""Determine how many step columns fit in the terminal.

		Each column takes 2 characters (mark + space) except the last, plus
		the indent, label and pipe delimiters.
		"""

		overhead = 2 + _LABEL_WIDTH + 2
		available = term_width - overhead

		if available <= 0:
			return 0

		return min(step_count, (available + 1) // 2)

	def update (self) -> None:

		"""Rebuild and redraw the grid."""

		if not self._active:
			return

		self._lines = self.build_lines()
		self.draw()

	def draw (self) -> None:

		"""Write the current grid to the terminal."""

		if not self._active or not self._lines:
			return

		# Cursor sits on the last (status) line, so move up (count - 1).
		if self._drawn_line_count > 1:
			sys.stderr.write(f"\033[{self._drawn_line_count - 1}A")

		for line in self._lines[:-1]:
			sys.stderr.write(f"\r\033[K{line}\n")

		sys.stderr.write(f"\r\033[K{self._lines[-1]}")
		sys.stderr.flush()

		self._drawn_line_count = len(self._lines)

	def clear_lines (self) -> None:

		"""Erase the whole grid region from the terminal."""

		if not self._active:
			return

		if self._drawn_line_count > 1:
			sys.stderr.write(f"\033[{self._drawn_line_count - 1}A")

			for _ in range(self._drawn_line_count):
				sys.stderr.write("\r\033[K\n")

			sys.stderr.write(f"\033[{self._drawn_line_count}A")
		else:
			sys.stderr.write("\r\033[K")

		sys.stderr.flush()
		self._drawn_line_count = 0
