import logging
import typing

import beatgrid.instrument


logger = logging.getLogger(__name__)

ColumnSnapshot = typing.Tuple[typing.Tuple[int, bool], ...]


class InvalidIndexError (IndexError):

	"""
	A row or step index outside the configured grid.
	"""


class PatternStore:

	"""
	The boolean activation matrix: one row per instrument, one column per step.

	Every cell holds a real ``bool`` at all times.  The store is the only
	place that knows whether a cell is active; everything else reads it
	through :meth:`is_active` or :meth:`column_snapshot`.  Bad indices raise
	:class:`InvalidIndexError`; they are never clamped.
	"""

	def __init__ (self, instruments: typing.Sequence[beatgrid.instrument.Instrument], step_count: int = 8) -> None:

		"""
		Create an empty grid for a fixed instrument list.
		"""

		if not instruments:
			raise ValueError("At least one instrument is required")

		if step_count <= 0:
			raise ValueError("Step count must be positive")

		names = [instrument.name for instrument in instruments]

		if len(set(names)) != len(names):
			raise ValueError(f"Instrument names must be unique: {names}")

		self._instruments: typing.Tuple[beatgrid.instrument.Instrument, ...] = tuple(instruments)
		self._step_count = step_count
		self._cells: typing.List[typing.List[bool]] = [[False] * step_count for _ in self._instruments]


	@property
	def instruments (self) -> typing.Tuple[beatgrid.instrument.Instrument, ...]:

		"""The instruments, in row order."""

		return self._instruments

	@property
	def instrument_count (self) -> int:

		"""Number of rows."""

		return len(self._instruments)

	@property
	def step_count (self) -> int:

		"""Number of columns."""

		return self._step_count


	def _check (self, row: int, step: int) -> None:

		if not 0 <= row < len(self._instruments):
			raise InvalidIndexError(f"Row {row} out of range (0-{len(self._instruments) - 1})")

		if not 0 <= step < self._step_count:
			raise InvalidIndexError(f"Step {step} out of range (0-{self._step_count - 1})")


	def row_index (self, name: str) -> int:

		"""
		Return the row of the instrument called *name*.
		"""

		for row, instrument in enumerate(self._instruments):
			if instrument.name == name:
				return row

		raise KeyError(f"No instrument named {name!r}")


	def toggle (self, row: int, step: int) -> bool:

		"""
		Flip one cell and return its new value.
		"""

		self._check(row, step)

		value = not self._cells[row][step]
		self._cells[row][step] = value

		return value


	def set_cell (self, row: int, step: int, active: bool) -> bool:

		"""
		Set one cell explicitly and return the stored value.
		"""

		self._check(row, step)

		self._cells[row][step] = bool(active)

		return self._cells[row][step]


	def is_active (self, row: int, step: int) -> bool:

		"""
		Return whether the cell at (*row*, *step*) is active.
		"""

		self._check(row, step)

		return self._cells[row][step]


	def column_snapshot (self, step: int) -> ColumnSnapshot:

		"""
		Return ``(row, active)`` for every row of one column, in row order.

		The result is an immutable copy, so later toggles never show up in a
		snapshot that has already been taken.
		"""

		if not 0 <= step < self._step_count:
			raise InvalidIndexError(f"Step {step} out of range (0-{self._step_count - 1})")

		return tuple((row, cells[step]) for row, cells in enumerate(self._cells))


	def row_cells (self, row: int) -> typing.Tuple[bool, ...]:

		"""
		Return one instrument's row as a tuple of booleans.
		"""

		if not 0 <= row < len(self._instruments):
			raise InvalidIndexError(f"Row {row} out of range (0-{len(self._instruments) - 1})")

		return tuple(self._cells[row])


	def to_grid (self) -> typing.List[typing.List[bool]]:

		"""
		Return a copy of the whole matrix as a list of rows.
		"""

		return [list(cells) for cells in self._cells]


	def active_count (self) -> int:

		"""
		Number of active cells in the grid.
		"""

		return sum(sum(1 for cell in cells if cell) for cells in self._cells)


	def clear (self) -> None:

		"""
		Deactivate every cell.
		"""

		self._cells = [[False] * self._step_count for _ in self._instruments]

		logger.info("Pattern cleared")


	def resize (self, step_count: int) -> None:

		"""
		Change the number of steps, keeping the cells both sizes share.

		New columns start inactive; columns beyond the new size are dropped.
		"""

		if step_count <= 0:
			raise ValueError("Step count must be positive")

		if step_count == self._step_count:
			return

		resized: typing.List[typing.List[bool]] = []

		for cells in self._cells:
			kept = cells[:step_count]
			resized.append(kept + [False] * (step_count - len(kept)))

		self._cells = resized
		self._step_count = step_count

		logger.info(f"Pattern resized to {step_count} steps")


	def load_grid (self, grid: typing.Sequence[typing.Sequence[bool]]) -> None:

		"""
		Replace every cell from a list of rows with matching dimensions.
		"""

		if len(grid) != len(self._instruments):
			raise ValueError(f"Grid has {len(grid)} rows, expected {len(self._instruments)}")

		for cells in grid:
			if len(cells) != self._step_count:
				raise ValueError(f"Grid row has {len(cells)} steps, expected {self._step_count}")

		self._cells = [[bool(cell) for cell in cells] for cells in grid]


	def load_rows (self, rows: typing.Mapping[str, typing.Union[str, typing.Sequence[int]]]) -> None:

		"""
		Activate cells per instrument name.

		Each value is either a step string, where ``x`` marks an active step
		and ``.`` or ``-`` an inactive one (spaces are ignored), or a list of
		active step indices.  Instruments not named keep their current cells.

		Example:
			```python
			store.load_rows({"kick": "x...x...", "snare": [2, 6]})
			```
		"""

		for name, value in rows.items():

			row = self.row_index(name)

			if isinstance(value, str):
				marks = value.replace(" ", "")

				if len(marks) != self._step_count:
					raise ValueError(f"Row {name!r} has {len(marks)} steps, expected {self._step_count}")

				cells = []

				for mark in marks:
					if mark in ("x", "X"):
						cells.append(True)
					elif mark in (".", "-"):
						cells.append(False)
					else:
						raise ValueError(f"Unknown step mark {mark!r} in row {name!r}")

				self._cells[row] = cells

			else:
				cells = [False] * self._step_count

				for step in value:
					self._check(row, step)
					cells[step] = True

				self._cells[row] = cells
