import sys
import typing

from loguru import logger

from cosdi.config.common import DiskImageError
from cosdi.core.pipeline import Pipeline


def main(argv: typing.Sequence[str] | None = None) -> None:
    try:
        Pipeline(argv).run()
    except DiskImageError as e:
        logger.error(e)
        sys.exit(e.exit_code)
