import pytest

from cosdi.config.common import PreconditionError
from cosdi.core import env
from cosdi.core.env import EnvironmentValidator


def _validator(installed=("osbuild", "jq"), mode="Permissive", euid=0) -> EnvironmentValidator:
    return EnvironmentValidator(
        packages=("osbuild", "jq"),
        is_installed=lambda name: name in installed,
        get_selinux_mode=lambda: mode,
        get_euid=lambda: euid,
    )


def test_all_preconditions_hold():
    _validator().validate()


def test_missing_package():
    with pytest.raises(PreconditionError, match="No jq"):
        _validator(installed=("osbuild",)).validate()


@pytest.mark.parametrize("mode", ["Enforcing", "Disabled", None])
def test_selinux_not_permissive(mode):
    with pytest.raises(PreconditionError, match="SELinux"):
        _validator(mode=mode).validate()


def test_not_root():
    with pytest.raises(PreconditionError, match="root"):
        _validator(euid=1000).validate()


def test_packages_checked_first():
    with pytest.raises(PreconditionError, match="No osbuild, jq"):
        _validator(installed=(), mode="Enforcing", euid=1000).validate()


class DummyBuilder:
    def __init__(self, exc: Exception | None = None):
        self.exc = exc

    def stderr(self, _fd):
        return self

    def build(self):
        raise self.exc


def test_selinux_mode_without_getenforce(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(env, "CmdBuilder", lambda _cmd: DummyBuilder(FileNotFoundError("getenforce")))
    assert env.selinux_mode() is None
