import os
import subprocess
import typing

from loguru import logger

from cosdi.config.common import REQUIRED_PACKAGES, PreconditionError
from cosdi.config.utils import CmdBuilder


PERMISSIVE = "Permissive"


def rpm_installed(name: str) -> bool:
    """
    Check the host rpm database for an installed package

    :param name: package name
    :type name: str
    :return: True if at least one package with the name is installed
    :rtype: bool
    """
    # imported here so the module loads on hosts without rpm bindings
    import rpm  # type: ignore

    for _ in rpm.TransactionSet().dbMatch("name", name):
        return True
    return False


def selinux_mode() -> str | None:
    """
    Get the current SELinux mode as printed by `getenforce`

    :return: mode name or None if it can't be determined
    :rtype: str | None
    """
    try:
        proc = CmdBuilder("getenforce").stderr(subprocess.DEVNULL).build()
    except FileNotFoundError:
        return None

    out, _ = proc.communicate()
    if proc.returncode != 0:
        return None
    return out.decode().strip()


class EnvironmentValidator:
    def __init__(
        self,
        packages: typing.Iterable[str] = REQUIRED_PACKAGES,
        is_installed: typing.Callable[[str], bool] = rpm_installed,
        get_selinux_mode: typing.Callable[[], str | None] = selinux_mode,
        get_euid: typing.Callable[[], int] = os.geteuid,
    ) -> None:
        self.packages = tuple(packages)
        self.is_installed = is_installed
        self.get_selinux_mode = get_selinux_mode
        self.get_euid = get_euid

    def _validate_packages(self) -> None:
        missing = [name for name in self.packages if not self.is_installed(name)]
        if missing:
            raise PreconditionError(f"No {', '.join(missing)}. Can't continue")

    def _validate_selinux(self) -> None:
        if (mode := self.get_selinux_mode()) != PERMISSIVE:
            raise PreconditionError(
                f"SELinux needs to be set to permissive mode (current: {mode or 'unknown'})")

    def _validate_privileges(self) -> None:
        if self.get_euid() != 0:
            raise PreconditionError("OSBuild needs to run with root permissions")

    def validate(self) -> None:
        self._validate_packages()
        self._validate_selinux()
        self._validate_privileges()
        logger.debug("environment preconditions hold")
