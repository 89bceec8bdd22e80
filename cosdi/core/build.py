import dataclasses
import enum
import platform


class Arch(enum.StrEnum):
    x86_64 = "x86_64"
    aarch64 = "aarch64"
    s390x = "s390x"
    ppc64le = "ppc64le"

    @classmethod
    def host(cls) -> "Arch":
        return cls(platform.machine())


class Platform(enum.StrEnum):
    ALIYUN = "aliyun"
    APPLEHV = "applehv"
    AWS = "aws"
    AZURE = "azure"
    AZURESTACK = "azurestack"
    DIGITALOCEAN = "digitalocean"
    EXOSCALE = "exoscale"
    GCP = "gcp"
    HETZNER = "hetzner"
    HYPERV = "hyperv"
    IBMCLOUD = "ibmcloud"
    KUBEVIRT = "kubevirt"
    METAL4K = "metal4k"
    METAL = "metal"
    NUTANIX = "nutanix"
    OPENSTACK = "openstack"
    QEMU = "qemu"
    QEMU_SECEX = "qemu-secex"
    VULTR = "vultr"
    LIVE = "live"


class Format(enum.StrEnum):
    QCOW2 = "qcow2"
    RAW = "raw"
    VMDK = "vmdk"
    VHD = "vhd"
    VHDX = "vhdx"
    TAR_GZ = "tar.gz"
    OCIARCHIVE = "ociarchive"
    ISO = "iso"


@dataclasses.dataclass(frozen=True)
class PlatformDescriptor:
    """
    What a platform build produces

    fmt - suffix of the main artifact
    include - name of the platform include manifest (None if the platform
        is described by another platform's include)
    artifact_types - artifact name segments for platforms producing more
        than one deliverable, with `{arch}` and `{suffix}` placeholders
    """
    fmt: Format
    include: str | None = None
    artifact_types: tuple[str, ...] = ()

    def artifact_names(self, prefix: str, platform: Platform, arch: Arch) -> list[str]:
        """
        Get the file names the build tool writes for the platform

        :param prefix: artifact name prefix (archive basename)
        :type prefix: str
        :param platform: platform the names are computed for
        :type platform: Platform
        :param arch: target architecture
        :type arch: Arch
        :return: file names in the platform output directory
        :rtype: list[str]
        """
        if not self.artifact_types:
            return [f"{prefix}-{platform}.{arch}.{self.fmt}"]

        return [
            f"{prefix}-{platform}-{artifact_type.format(arch=arch, suffix=self.fmt)}"
            for artifact_type in self.artifact_types
        ]


def _include(name: str) -> str:
    return f"platform.{name}.ipp.yaml"


PLATFORMS: dict[Platform, PlatformDescriptor] = {
    Platform.ALIYUN: PlatformDescriptor(Format.QCOW2, _include("aliyun")),
    Platform.APPLEHV: PlatformDescriptor(Format.RAW, _include("applehv")),
    Platform.AWS: PlatformDescriptor(Format.VMDK, _include("aws")),
    Platform.AZURE: PlatformDescriptor(Format.VHD, _include("azure")),
    Platform.AZURESTACK: PlatformDescriptor(Format.VHD, _include("azurestack")),
    Platform.DIGITALOCEAN: PlatformDescriptor(Format.QCOW2, _include("digitalocean")),
    Platform.EXOSCALE: PlatformDescriptor(Format.QCOW2, _include("exoscale")),
    Platform.GCP: PlatformDescriptor(Format.TAR_GZ, _include("gcp")),
    Platform.HETZNER: PlatformDescriptor(Format.RAW, _include("hetzner")),
    Platform.HYPERV: PlatformDescriptor(Format.VHDX, _include("hyperv")),
    Platform.IBMCLOUD: PlatformDescriptor(Format.QCOW2, _include("ibmcloud")),
    Platform.KUBEVIRT: PlatformDescriptor(Format.OCIARCHIVE, _include("kubevirt")),
    # metal4k is defined in platform.metal.ipp.yaml
    Platform.METAL4K: PlatformDescriptor(Format.RAW),
    Platform.METAL: PlatformDescriptor(Format.RAW, _include("metal")),
    Platform.NUTANIX: PlatformDescriptor(Format.QCOW2, _include("nutanix")),
    Platform.OPENSTACK: PlatformDescriptor(Format.QCOW2, _include("openstack")),
    Platform.QEMU: PlatformDescriptor(Format.QCOW2, _include("qemu")),
    Platform.QEMU_SECEX: PlatformDescriptor(Format.QCOW2, _include("qemu-secex")),
    Platform.VULTR: PlatformDescriptor(Format.RAW, _include("vultr")),
    Platform.LIVE: PlatformDescriptor(
        Format.ISO,
        _include("live"),
        artifact_types=(
            "iso.{arch}.{suffix}",
            "kernel.{arch}",
            "rootfs.{arch}.img",
            "initramfs.{arch}.img",
        ),
    ),
}


def include_files() -> list[str]:
    return [desc.include for desc in PLATFORMS.values() if desc.include is not None]
