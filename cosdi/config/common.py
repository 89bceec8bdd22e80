import enum


class OSName(enum.StrEnum):
    RHCOS = "rhcos"
    FCOS = "fedora-coreos"


# Freeze on a specific coreos-assembler revision for reproducible builds.
MANIFEST_REF = "60d468e70172345d807886f1e3685b74803c370f"
MANIFEST_URL = "https://raw.githubusercontent.com/coreos/coreos-assembler/{{ ref }}/src/{{ path }}"
RUNNER_NAME = "runvm-osbuild"

REQUIRED_PACKAGES = (
    "osbuild",
    "osbuild-tools",
    "osbuild-ostree",
    "jq",
    "xfsprogs",
    "e2fsprogs",
)

IMGREF_TEMPLATE = "ostree-image-signed:oci-archive:/{{ basename }}"
ARCHIVE_SUFFIX = ".ociarchive"

METAL_IMAGE_SIZE = 4096

# In the future these should come from the container image
# (/usr/share/coreos-assembler/image.json).
OS_DEFAULTS: dict[OSName, dict[str, int | str]] = {
    OSName.RHCOS: {
        "cloud_image_size": 16384,
        "extra_kargs": "",
    },
    OSName.FCOS: {
        "cloud_image_size": 10240,
        "extra_kargs": "mitigations=auto,nosmt",
    },
}


class DiskImageError(Exception):
    exit_code = 1


class ValidationError(DiskImageError):
    exit_code = 2


class ArchiveNotFoundError(ValidationError):
    exit_code = 7


class PreconditionError(DiskImageError):
    exit_code = 3


class FetchError(DiskImageError):
    exit_code = 4


class BuildError(DiskImageError):
    exit_code = 5


class PostprocessError(DiskImageError):
    exit_code = 6
