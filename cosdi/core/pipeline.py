import enum
import pathlib
import typing

from loguru import logger

from cosdi.config.options import BuildConfig, resolve
from cosdi.core.build import Arch
from cosdi.core.dispatch import Builder, Dispatcher
from cosdi.core.env import EnvironmentValidator
from cosdi.core.manifest import ManifestFetcher
from cosdi.core.workspace import Workspace


class Stage(enum.StrEnum):
    UNRESOLVED = "unresolved"
    VALIDATED = "validated"
    FETCHED = "fetched"
    BUILT = "built"
    FINALIZED = "finalized"
    FAILED = "failed"


class Pipeline:
    """
    Run the stages of a disk image build in order

    The workspace holding the manifests and the tool output is created only
    after the options and the host have been validated and is removed on
    every exit path.
    """
    def __init__(
        self,
        argv: typing.Sequence[str] | None = None,
        validator: EnvironmentValidator | None = None,
        fetcher: ManifestFetcher | None = None,
        builder: Builder | None = None,
        workdir: str | pathlib.Path = ".",
        arch: Arch | None = None,
    ) -> None:
        self.argv = argv
        self.validator = validator or EnvironmentValidator()
        self.fetcher = fetcher or ManifestFetcher()
        self.builder = builder
        self.workdir = pathlib.Path(workdir)
        self.arch = arch
        self.stage = Stage.UNRESOLVED
        self.config: BuildConfig | None = None

    def _advance(self, stage: Stage) -> None:
        logger.debug(f"{self.stage} -> {stage}")
        self.stage = stage

    def _run(self) -> list[pathlib.Path]:
        config = self.config = resolve(self.argv, self.arch)
        self.validator.validate()
        self._advance(Stage.VALIDATED)

        with Workspace(self.workdir) as workspace:
            manifests = self.fetcher.fetch(config.arch, workspace.path)
            self._advance(Stage.FETCHED)

            dispatcher = Dispatcher(config, workspace.path, self.workdir.absolute(), self.builder)
            dispatcher.build(manifests)
            self._advance(Stage.BUILT)

            created = dispatcher.postprocess()

        self._advance(Stage.FINALIZED)
        return created

    def run(self) -> list[pathlib.Path]:
        try:
            return self._run()
        except Exception:
            self._advance(Stage.FAILED)
            raise
