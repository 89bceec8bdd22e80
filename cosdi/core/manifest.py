import dataclasses
import pathlib
import stat

import requests
from loguru import logger

from cosdi.config.common import MANIFEST_REF, MANIFEST_URL, RUNNER_NAME, FetchError
from cosdi.config.utils import render
from cosdi.core.build import Arch, include_files


MANIFESTS_DIR = "osbuild-manifests"


@dataclasses.dataclass
class ManifestSet:
    ref: str
    runner: pathlib.Path
    manifest: pathlib.Path
    includes: list[pathlib.Path]


def master_manifest_name(arch: Arch) -> str:
    return f"coreos.osbuild.{arch}.mpp.yaml"


class ManifestFetcher:
    """
    Download the osbuild manifests and the runvm-osbuild wrapper pinned to
    a coreos-assembler revision
    """
    def __init__(
        self,
        ref: str = MANIFEST_REF,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        if not ref:
            raise ValueError("manifest revision must be pinned")

        self.ref = ref
        self.owns_session = session is None
        self.session = session or requests.Session()
        self.timeout = timeout

    def url(self, path: str) -> str:
        return render(MANIFEST_URL, ref=self.ref, path=path)

    def paths(self, arch: Arch) -> list[str]:
        """
        Get the upstream paths (relative to `src/`) needed to build `arch`

        :param arch: target architecture
        :type arch: Arch
        :return: runner first, then the master manifest and the platform includes
        :rtype: list[str]
        """
        names = [master_manifest_name(arch), *include_files()]
        return [RUNNER_NAME, *(f"{MANIFESTS_DIR}/{name}" for name in names)]

    def _download(self, path: str, dest: pathlib.Path) -> pathlib.Path:
        url = self.url(path)
        target = dest.joinpath(pathlib.PurePosixPath(path).name)

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Failed to download {url}: {e}") from e

        try:
            target.write_bytes(response.content)
        except OSError as e:
            raise FetchError(f"Failed to store {url} at {target}: {e}") from e
        logger.debug(f"downloaded {url}")

        return target

    def fetch(self, arch: Arch, dest: pathlib.Path) -> ManifestSet:
        """
        Download everything into `dest`, failing on the first error

        :param arch: target architecture
        :type arch: Arch
        :param dest: directory to store the files at
        :type dest: pathlib.Path
        :raises FetchError: if any download fails
        :return: downloaded manifests
        :rtype: ManifestSet
        """
        logger.info(f"fetching manifests at coreos-assembler {self.ref}")

        try:
            [runner, manifest, *includes] = [self._download(path, dest) for path in self.paths(arch)]
        finally:
            if self.owns_session:
                self.session.close()

        runner.chmod(runner.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        return ManifestSet(self.ref, runner, manifest, includes)
