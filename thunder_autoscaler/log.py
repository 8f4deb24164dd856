import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(debug=0, stream=None):
    level = logging.DEBUG if debug > 0 else logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=stream or sys.stdout,
        force=True,
    )
    # urllib3 retries are noisy at DEBUG and say nothing the clients don't
    logging.getLogger("urllib3").setLevel(logging.WARNING)
