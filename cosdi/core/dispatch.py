import abc
import collections
import dataclasses
import pathlib
import shutil
import subprocess
import typing

import pydantic
from loguru import logger

from cosdi.config.common import BuildError, PostprocessError
from cosdi.config.options import BuildConfig
from cosdi.config.utils import CmdBuilder
from cosdi.core.build import PLATFORMS, Platform
from cosdi.core.manifest import ManifestSet


CONFIG_NAME = "runvm-osbuild-config.json"
OUTPUT_TAIL = 20


class RunvmConfig(pydantic.BaseModel):
    """
    Schema of the runvm-osbuild configuration document

    Pinned to the coreos-assembler revision the manifests are fetched from,
    which reads every value as a string.

    rootfs_size - only used on s390x secex builds
    extra_kargs_string - empty on RHCOS, may be picked up from the container
        image (/usr/share/coreos-assembler/image.json) in the future
    """
    model_config = pydantic.ConfigDict(
        alias_generator=lambda name: name.replace("_", "-"),
        populate_by_name=True,
        frozen=True,
    )

    artifact_name_prefix: str
    osname: str
    deploy_via_container: typing.Literal["true"] = "true"
    ostree_container: str
    container_imgref: str
    metal_image_size: str
    cloud_image_size: str
    rootfs_size: str = "0"
    extra_kargs_string: str

    @classmethod
    def from_build_config(cls, config: BuildConfig) -> typing.Self:
        return cls(
            artifact_name_prefix=config.artifact_name_prefix,
            osname=str(config.osname),
            ostree_container=str(config.ociarchive),
            container_imgref=config.imgref,
            metal_image_size=str(config.metal_image_size),
            cloud_image_size=str(config.cloud_image_size),
            extra_kargs_string=config.extra_kargs,
        )

    def write(self, path: pathlib.Path) -> pathlib.Path:
        path.write_text(self.model_dump_json(by_alias=True, indent=4) + "\n")
        return path


@dataclasses.dataclass
class Outcome:
    returncode: int
    output: list[str] = dataclasses.field(default_factory=list)


class Builder(abc.ABC):
    @abc.abstractmethod
    def invoke(
        self,
        config: pathlib.Path,
        manifest: pathlib.Path,
        outdir: pathlib.Path,
        platforms: typing.Sequence[Platform],
    ) -> Outcome:
        """
        Build all `platforms` in one run

        :param config: runvm-osbuild configuration document
        :type config: pathlib.Path
        :param manifest: master osbuild manifest
        :type manifest: pathlib.Path
        :param outdir: directory the tool writes `<platform>/` results to
        :type outdir: pathlib.Path
        :param platforms: platforms to build
        :type platforms: typing.Sequence[Platform]
        :return: return code and the tail of the tool output
        :rtype: Outcome
        """


class RunvmOsbuild(Builder):
    def __init__(self, runner: pathlib.Path) -> None:
        self.runner = runner

    def invoke(
        self,
        config: pathlib.Path,
        manifest: pathlib.Path,
        outdir: pathlib.Path,
        platforms: typing.Sequence[Platform],
    ) -> Outcome:
        proc = (
            CmdBuilder(self.runner).
            opts(config=config, mpp=manifest, outdir=outdir, platforms=",".join(platforms)).
            stderr(subprocess.STDOUT).
            build()
        )

        if not proc.stdout:
            raise ValueError("process has not stdout pipe")

        tail: collections.deque[str] = collections.deque(maxlen=OUTPUT_TAIL)

        for output in proc.stdout:
            line = output.decode(errors="replace").rstrip("\n")
            logger.info(line)
            tail.append(line)

        return Outcome(proc.wait(), list(tail))


class Dispatcher:
    def __init__(
        self,
        config: BuildConfig,
        workdir: pathlib.Path,
        destdir: pathlib.Path,
        builder: Builder | None = None,
    ) -> None:
        self.config = config
        self.workdir = workdir
        self.destdir = destdir
        self.builder = builder

    @property
    def outdir(self) -> pathlib.Path:
        return self.workdir.joinpath("out")

    def write_config(self) -> pathlib.Path:
        return RunvmConfig.from_build_config(self.config).write(self.workdir.joinpath(CONFIG_NAME))

    def build(self, manifests: ManifestSet) -> None:
        """
        Run the build tool once for all requested platforms

        :param manifests: fetched manifests
        :type manifests: ManifestSet
        :raises BuildError: if the tool can't be started or exits with non-zero code
        """
        config = self.write_config()
        self.outdir.mkdir(exist_ok=True)

        builder = self.builder or RunvmOsbuild(manifests.runner)
        platforms = list(self.config.platforms)

        logger.info(f"building {','.join(platforms)} for {self.config.arch}")
        try:
            outcome = builder.invoke(config, manifests.manifest, self.outdir, platforms)
        except OSError as e:
            raise BuildError(f"failed to run runvm-osbuild: {e}") from e

        if outcome.returncode != 0:
            details = "\n".join(outcome.output)
            raise BuildError(
                f"runvm-osbuild failed with exit code {outcome.returncode}"
                + (f":\n{details}" if details else ""))

    def postprocess(self) -> list[pathlib.Path]:
        """
        Move every platform artifact into the destination directory

        :raises PostprocessError: if an expected artifact is missing
        :return: moved artifacts in platform order
        :rtype: list[pathlib.Path]
        """
        created = []

        for platform in self.config.platforms:
            descriptor = PLATFORMS[platform]
            names = descriptor.artifact_names(
                self.config.artifact_name_prefix, platform, self.config.arch)

            for name in names:
                source = self.outdir.joinpath(platform, name)
                if not source.is_file():
                    raise PostprocessError(f"expected {platform} artifact is missing: {source}")

                target = self.destdir.joinpath(name)
                shutil.move(source, target)
                logger.info(f"Created {platform} image file at: {name}")
                created.append(target)

        return created
