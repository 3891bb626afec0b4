import logging
import typing


logger = logging.getLogger(__name__)


@typing.runtime_checkable
class RenderingSurface (typing.Protocol):

	"""
	Something that shows the grid: a terminal, a web page, a controller's LEDs.
	"""

	def highlight_step (self, step: int) -> None:

		"""Mark *step* as current in every row, unmarking any other step."""

		...

	def clear_highlight (self) -> None:

		"""Remove the current-step mark."""

		...

	def cell_changed (self, row: int, step: int, active: bool) -> None:

		"""Show the new state of one cell."""

		...


class StepHighlightReporter:

	"""
	Project the step cursor and cell changes onto rendering surfaces.

	The reporter holds no playback state: it forwards each call to every
	surface and forgets it.  Reporting the same step twice leaves the
	surfaces unchanged.  A surface that raises is logged and skipped so a
	broken display can never stall the sequencer.
	"""

	def __init__ (self, surfaces: typing.Optional[typing.Iterable[RenderingSurface]] = None) -> None:

		self._surfaces: typing.List[RenderingSurface] = list(surfaces or [])


	@property
	def surfaces (self) -> typing.Tuple[RenderingSurface, ...]:

		"""Registered surfaces."""

		return tuple(self._surfaces)


	def add_surface (self, surface: RenderingSurface) -> None:

		"""
		Start reporting to *surface*.
		"""

		if surface not in self._surfaces:
			self._surfaces.append(surface)


	def remove_surface (self, surface: RenderingSurface) -> None:

		"""
		Stop reporting to *surface*.
		"""

		if surface in self._surfaces:
			self._surfaces.remove(surface)


	def report_step (self, step: int) -> None:

		"""
		Mark *step* as the one about to sound.
		"""

		for surface in list(self._surfaces):
			try:
				surface.highlight_step(step)
			except Exception:
				logger.exception(f"Surface {surface!r} failed to highlight step {step}")


	def clear (self) -> None:

		"""
		Remove the step mark everywhere.
		"""

		for surface in list(self._surfaces):
			try:
				surface.clear_highlight()
			except Exception:
				logger.exception(f"Surface {surface!r} failed to clear highlight")


	def report_cell (self, row: int, step: int, active: bool) -> None:

		"""
		Show a changed cell everywhere.
		"""

		for surface in list(self._surfaces):
			try:
				surface.cell_changed(row, step, active)
			except Exception:
				logger.exception(f"Surface {surface!r} failed to update cell ({row}, {step})")
