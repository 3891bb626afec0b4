import argparse
import logging
import typing

import beatgrid.config
import beatgrid.session


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main (argv: typing.Optional[typing.List[str]] = None) -> None:

	"""
	Main entry point: load a config and run a session until Ctrl+C.
	"""

	parser = argparse.ArgumentParser(prog="beatgrid", description="Step sequencer and melody keyboard.")
	parser.add_argument("config", nargs="?", default="beatgrid.yaml", help="YAML session config (default: beatgrid.yaml)")
	parser.add_argument("--play", action="store_true", help="start the transport immediately")
	parser.add_argument("--render", metavar="FILE", help="render the pattern to a MIDI file instead of playing")
	parser.add_argument("--cycles", type=int, default=4, help="pattern repeats to render (default: 4)")
	args = parser.parse_args(argv)

	config = beatgrid.config.load_config(args.config)

	if args.play:
		config.autoplay = True

	if args.render:
		session = beatgrid.session.Session(config)
		hits = session.render(cycles=args.cycles, filename=args.render)
		logger.info(f"Rendered {hits} hits")
		return

	logger.info("beatgrid starting...")

	beatgrid.session.Session.from_config(config).play()


if __name__ == "__main__":
	main()
