import pathlib
import shutil
import tempfile
import types
import typing

from loguru import logger


class Workspace:
    """
    Scratch directory owned by a single run

    Created with a unique name under `parent` when the context is entered
    and removed on every exit path. A failed removal is only logged.
    """
    __slots__ = ("parent", "prefix", "path")

    def __init__(self, parent: str | pathlib.Path = ".", prefix: str = "tmp-osbuild-") -> None:
        self.parent = pathlib.Path(parent)
        self.prefix = prefix
        self.path: pathlib.Path | None = None

    def __enter__(self) -> typing.Self:
        self.path = pathlib.Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.parent)).absolute()
        logger.debug(f"created workspace {self.path}")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.path is None:
            return

        try:
            shutil.rmtree(self.path)
        except OSError as e:
            logger.warning(f"failed to remove workspace {self.path}: {e}")
        else:
            logger.debug(f"removed workspace {self.path}")
        self.path = None
