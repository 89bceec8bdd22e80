"""
Command line options of the disk image builder.

Options are parsed with argparse into `CliOptions` and then resolved into a
validated `BuildConfig`. Defaults that depend on the OS variant are taken from
`OS_DEFAULTS`; an explicitly passed option always wins over them.
"""

import argparse
import dataclasses
import pathlib
import typing

import pydantic

from cosdi.config.common import (
    ARCHIVE_SUFFIX,
    IMGREF_TEMPLATE,
    METAL_IMAGE_SIZE,
    OS_DEFAULTS,
    ArchiveNotFoundError,
    OSName,
    PreconditionError,
    ValidationError,
)
from cosdi.config.utils import render
from cosdi.core.build import PLATFORMS, Arch, Platform


USAGE_EPILOG = """\
The host needs SELinux in permissive mode, root permissions and the
osbuild, osbuild-tools, osbuild-ostree, jq, xfsprogs and e2fsprogs packages.

example:
  custom-coreos-disk-images --ociarchive /path/to/coreos.ociarchive --platforms qemu,metal

creates coreos-qemu.<arch>.qcow2 and coreos-metal.<arch>.raw in the current
directory.
"""


class OptionParser(argparse.ArgumentParser):
    """
    ArgumentParser that raises ValidationError instead of exiting
    """
    def error(self, message: str) -> typing.NoReturn:
        raise ValidationError(message)


class BuildConfig(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    ociarchive: pathlib.Path
    imgref: str
    osname: OSName
    platforms: list[Platform] = pydantic.Field(min_length=1)
    metal_image_size: pydantic.PositiveInt
    cloud_image_size: pydantic.PositiveInt
    extra_kargs: str
    arch: Arch

    @pydantic.field_validator("ociarchive")
    @classmethod
    def ociarchive_must_be_absolute(cls, v: pathlib.Path) -> pathlib.Path:
        if not v.is_absolute():
            raise ValueError(f"\"{v}\" is not an absolute path")
        return v

    @property
    def artifact_name_prefix(self) -> str:
        """
        Archive basename without the `.ociarchive` suffix
        e.g.
            /srv/coreos.ociarchive -> coreos
        """
        return self.ociarchive.name.removesuffix(ARCHIVE_SUFFIX)


@dataclasses.dataclass
class CliOptions:
    ociarchive: str
    osname: OSName = OSName.RHCOS
    imgref: str | None = None
    platforms: str | None = None
    metal_image_size: int | None = None
    cloud_image_size: int | None = None
    extra_kargs: str | None = None

    def __post_init__(self) -> None:
        self.osname = OSName(self.osname)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> typing.Self:
        """
        Create a new CliOptions instance from argparse arguments

        :param args: arguments from the cli
        :type args: argparse.Namespace
        :return: instance of CliOptions
        :rtype: typing.Self
        """
        return cls(
            args.ociarchive,
            args.osname,
            args.imgref,
            args.platforms,
            args.metal_image_size,
            args.cloud_image_size,
            args.extra_kargs,
        )

    def _platforms(self) -> list[Platform]:
        if not self.platforms:
            raise ValidationError("--platforms: at least one platform is required")

        names = [name.strip() for name in self.platforms.split(",")]
        if "" in names:
            raise ValidationError(f"--platforms: empty entry in \"{self.platforms}\"")

        unknown = [name for name in names if name not in PLATFORMS]
        if unknown:
            raise ValidationError(
                f"--platforms: unsupported platform(s) {', '.join(unknown)}; "
                f"choose from {', '.join(PLATFORMS)}")

        # keep the requested order, drop repeats
        return [Platform(name) for name in dict.fromkeys(names)]

    def _size(self, flag: str, value: int | None, default: int) -> int:
        if value is None:
            return default
        if value <= 0:
            raise ValidationError(f"{flag}: must be a positive integer, got {value}")
        return value

    def _ociarchive(self) -> pathlib.Path:
        path = pathlib.Path(self.ociarchive)
        if not path.is_file():
            raise ArchiveNotFoundError(
                f"--ociarchive: \"{self.ociarchive}\" does not exist, "
                "need to pass in the path to .ociarchive file")
        return path.resolve()

    def resolve(self, arch: Arch | None = None) -> BuildConfig:
        """
        Apply defaults and validate the options

        :param arch: target architecture (default: host architecture)
        :type arch: Arch | None
        :raises ValidationError: on an invalid option value
        :raises ArchiveNotFoundError: if the archive does not exist
        :return: resolved build configuration
        :rtype: BuildConfig
        """
        defaults = OS_DEFAULTS[self.osname]

        platforms = self._platforms()
        metal_image_size = self._size("--metal-image-size", self.metal_image_size, METAL_IMAGE_SIZE)
        cloud_image_size = self._size(
            "--cloud-image-size", self.cloud_image_size, int(defaults["cloud_image_size"]))
        extra_kargs = self.extra_kargs if self.extra_kargs is not None else str(defaults["extra_kargs"])

        ociarchive = self._ociarchive()
        imgref = self.imgref or render(IMGREF_TEMPLATE, basename=ociarchive.name)

        if arch is None:
            try:
                arch = Arch.host()
            except ValueError as e:
                raise PreconditionError(f"unsupported host architecture: {e}") from e

        try:
            return BuildConfig(
                ociarchive=ociarchive,
                imgref=imgref,
                osname=self.osname,
                platforms=platforms,
                metal_image_size=metal_image_size,
                cloud_image_size=cloud_image_size,
                extra_kargs=extra_kargs,
                arch=arch,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e


def make_parser() -> OptionParser:
    parser = OptionParser(
        prog="custom-coreos-disk-images",
        description="Create CoreOS disk images from an OCI archive",
        epilog=USAGE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument(
        "--ociarchive",
        help="path to the .ociarchive file",
        required=True)
    parser.add_argument(
        "--osname",
        help="OS name (default: rhcos)",
        choices=[*OSName],
        default=OSName.RHCOS)
    parser.add_argument(
        "--imgref",
        help="container image reference (default: ostree-image-signed:oci-archive:/<archive name>)")
    parser.add_argument(
        "--platforms",
        help="comma separated list of platforms (e.g. qemu,metal)")
    parser.add_argument(
        "--metal-image-size",
        dest="metal_image_size",
        type=int,
        help=f"metal image size in MB (default: {METAL_IMAGE_SIZE})")
    parser.add_argument(
        "--cloud-image-size",
        dest="cloud_image_size",
        type=int,
        help="cloud image size in MB (default: 16384 for rhcos, 10240 for fedora-coreos)")
    parser.add_argument(
        "--extra-kargs",
        dest="extra_kargs",
        help="extra kernel arguments (default: none for rhcos, "
             "mitigations=auto,nosmt for fedora-coreos)")

    return parser


def resolve(argv: typing.Sequence[str] | None = None, arch: Arch | None = None) -> BuildConfig:
    args = make_parser().parse_args(argv)
    return CliOptions.from_args(args).resolve(arch)
