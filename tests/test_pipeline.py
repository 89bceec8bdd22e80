import json
from pathlib import Path

import pytest

from cosdi import cli
from cosdi.config.common import ArchiveNotFoundError, BuildError, FetchError, PreconditionError, ValidationError
from cosdi.core.build import PLATFORMS, Arch
from cosdi.core.dispatch import Builder, Outcome
from cosdi.core.manifest import ManifestSet
from cosdi.core.pipeline import Pipeline, Stage


class DummyValidator:
    def __init__(self, exc: Exception | None = None):
        self.exc = exc
        self.calls = 0

    def validate(self):
        self.calls += 1
        if self.exc:
            raise self.exc


class DummyFetcher:
    def __init__(self, exc: Exception | None = None, runner: str | None = None):
        self.exc = exc
        self.runner = runner
        self.calls = []

    def fetch(self, arch, dest):
        self.calls.append((arch, dest))
        if self.exc:
            raise self.exc
        manifest = dest / f"coreos.osbuild.{arch}.mpp.yaml"
        manifest.write_text("version: '2'\n")
        runner = dest / "runvm-osbuild"
        if self.runner is not None:
            runner.write_text(self.runner)
            runner.chmod(0o755)
        return ManifestSet("ref", runner, manifest, [])


class DummyBuilder(Builder):
    def __init__(self, returncode=0):
        self.returncode = returncode
        self.calls = 0

    def invoke(self, config, manifest, outdir, platforms):
        self.calls += 1
        prefix = json.loads(config.read_text())["artifact-name-prefix"]
        for platform in platforms:
            (outdir / platform).mkdir()
            for name in PLATFORMS[platform].artifact_names(prefix, platform, Arch.x86_64):
                (outdir / platform / name).write_text(name)
        return Outcome(self.returncode)


def _pipeline(tmp_path: Path, argv, validator=None, fetcher=None, builder=None) -> Pipeline:
    return Pipeline(
        argv,
        validator=validator or DummyValidator(),
        fetcher=fetcher or DummyFetcher(),
        builder=builder or DummyBuilder(),
        workdir=tmp_path,
        arch=Arch.x86_64,
    )


def _workspaces(tmp_path: Path) -> list[Path]:
    return list(tmp_path.glob("tmp-osbuild-*"))


@pytest.fixture
def archive(tmp_path: Path) -> Path:
    path = tmp_path / "x.ociarchive"
    path.write_bytes(b"oci")
    return path


def test_qemu(tmp_path: Path, archive: Path):
    pipeline = _pipeline(tmp_path, ["--ociarchive", str(archive), "--platforms", "qemu", "--osname", "rhcos"])

    created = pipeline.run()

    assert created == [tmp_path / "x-qemu.x86_64.qcow2"]
    assert created[0].is_file()
    assert pipeline.stage == Stage.FINALIZED
    assert _workspaces(tmp_path) == []


def test_rerun_gives_same_names(tmp_path: Path, archive: Path):
    argv = ["--ociarchive", str(archive), "--platforms", "qemu,live"]

    first = _pipeline(tmp_path, argv).run()
    second = _pipeline(tmp_path, argv).run()

    assert first == second
    assert len(first) == 5


def test_missing_archive(tmp_path: Path):
    validator, fetcher, builder = DummyValidator(), DummyFetcher(), DummyBuilder()
    pipeline = _pipeline(
        tmp_path, ["--ociarchive", str(tmp_path / "missing.ociarchive"), "--platforms", "qemu"],
        validator, fetcher, builder)

    with pytest.raises(ArchiveNotFoundError):
        pipeline.run()

    assert pipeline.stage == Stage.FAILED
    assert (validator.calls, fetcher.calls, builder.calls) == (0, [], 0)
    assert _workspaces(tmp_path) == []


def test_bad_osname_before_environment(tmp_path: Path, archive: Path):
    validator = DummyValidator()

    with pytest.raises(ValidationError):
        _pipeline(tmp_path, ["--ociarchive", str(archive), "--osname", "windows"], validator).run()

    assert validator.calls == 0


def test_unknown_platform_before_fetch(tmp_path: Path, archive: Path):
    fetcher = DummyFetcher()

    with pytest.raises(ValidationError):
        _pipeline(tmp_path, ["--ociarchive", str(archive), "--platforms", "qemu,amiga"], fetcher=fetcher).run()

    assert fetcher.calls == []


def test_precondition_before_workspace(tmp_path: Path, archive: Path):
    fetcher = DummyFetcher()
    validator = DummyValidator(PreconditionError("SELinux needs to be set to permissive mode"))

    with pytest.raises(PreconditionError):
        _pipeline(tmp_path, ["--ociarchive", str(archive), "--platforms", "qemu"], validator, fetcher).run()

    assert fetcher.calls == []
    assert _workspaces(tmp_path) == []


def test_fetch_failure_cleans_up(tmp_path: Path, archive: Path):
    builder = DummyBuilder()
    fetcher = DummyFetcher(FetchError("Failed to download"))
    pipeline = _pipeline(tmp_path, ["--ociarchive", str(archive), "--platforms", "qemu"], fetcher=fetcher, builder=builder)

    with pytest.raises(FetchError):
        pipeline.run()

    assert builder.calls == 0
    assert _workspaces(tmp_path) == []


def test_build_failure_cleans_up(tmp_path: Path, archive: Path):
    pipeline = _pipeline(
        tmp_path, ["--ociarchive", str(archive), "--platforms", "qemu"], builder=DummyBuilder(returncode=1))

    with pytest.raises(BuildError):
        pipeline.run()

    assert pipeline.stage == Stage.FAILED
    assert _workspaces(tmp_path) == []
    assert not (tmp_path / "x-qemu.x86_64.qcow2").exists()


@pytest.mark.parametrize(
    "argv, code",
    [
        (["--osname", "windows"], 2),
        (["--bogus"], 2),
        (["--ociarchive", "/nonexistent/missing.ociarchive", "--platforms", "qemu"], 7),
    ],
)
def test_cli_exit_codes(argv, code):
    with pytest.raises(SystemExit) as e:
        cli.main(argv)
    assert e.value.code == code


def test_cli_success(tmp_path: Path, archive: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        cli, "Pipeline",
        lambda argv: _pipeline(tmp_path, argv))

    cli.main(["--ociarchive", "x.ociarchive", "--platforms", "metal"])

    assert (tmp_path / "x-metal.x86_64.raw").is_file()


RUNNER = """\
#!/bin/sh
while [ $# -gt 0 ]; do
    case "$1" in
    --outdir) outdir=$2; shift ;;
    --platforms) platforms=$2; shift ;;
    esac
    shift
done
for platform in $(echo "$platforms" | tr , ' '); do
    mkdir -p "$outdir/$platform"
    echo "$platform" > "$outdir/$platform/x-$platform.x86_64.qcow2"
done
"""


def test_fetched_runner_builds(tmp_path: Path, archive: Path):
    pipeline = Pipeline(
        ["--ociarchive", str(archive), "--platforms", "qemu"],
        validator=DummyValidator(),
        fetcher=DummyFetcher(runner=RUNNER),
        workdir=tmp_path,
        arch=Arch.x86_64,
    )

    created = pipeline.run()

    assert created == [tmp_path / "x-qemu.x86_64.qcow2"]
    assert created[0].read_text() == "qemu\n"
    assert pipeline.stage == Stage.FINALIZED
    assert _workspaces(tmp_path) == []


def test_fetched_runner_not_executable(tmp_path: Path, archive: Path):
    pipeline = Pipeline(
        ["--ociarchive", str(archive), "--platforms", "qemu"],
        validator=DummyValidator(),
        fetcher=DummyFetcher(runner="not a script\n"),
        workdir=tmp_path,
        arch=Arch.x86_64,
    )

    with pytest.raises(BuildError):
        pipeline.run()

    assert pipeline.stage == Stage.FAILED
    assert _workspaces(tmp_path) == []


class CrashingBuilder(Builder):
    def invoke(self, config, manifest, outdir, platforms):
        raise RuntimeError("unexpected")


def test_unexpected_error_fails_pipeline(tmp_path: Path, archive: Path):
    pipeline = _pipeline(
        tmp_path, ["--ociarchive", str(archive), "--platforms", "qemu"], builder=CrashingBuilder())

    with pytest.raises(RuntimeError):
        pipeline.run()

    assert pipeline.stage == Stage.FAILED
    assert _workspaces(tmp_path) == []
