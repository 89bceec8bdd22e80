from __future__ import annotations

import os
import subprocess
from dataclasses import asdict, dataclass
from typing import Self

import jinja2


_ENV = jinja2.Environment(loader=jinja2.BaseLoader(), undefined=jinja2.StrictUndefined)


def render(template: str, **pool: str) -> str:
    """
    Render a jinja template string with the given variable pool.
    Undefined variables raise instead of rendering as empty strings.
    """
    return _ENV.from_string(template).render(**pool)


@dataclass
class ProcOptions:
    stdout: int | None = subprocess.PIPE
    stderr: int | None = subprocess.PIPE


class CmdBuilder:
    __slots__ = ("_cmd", "_args", "_opts", "_proc_opts", "_cwd")

    def __init__(self, cmd: str | os.PathLike) -> None:
        self._cmd = str(cmd)
        self._args: list[str] = []
        self._opts: dict[str, str] = {}
        self._proc_opts = ProcOptions()
        self._cwd: str | None = None

    def args(self, *args: str) -> Self:
        self._args.extend(args)
        return self

    def opts(self, **kwargs: str | os.PathLike) -> Self:
        self._opts = {k.replace("_", "-"): str(v) for k, v in kwargs.items()}
        return self

    def stdout(self, fd: int | None = subprocess.PIPE) -> Self:
        self._proc_opts.stdout = fd
        return self

    def stderr(self, fd: int | None = subprocess.PIPE) -> Self:
        self._proc_opts.stderr = fd
        return self

    def cwd(self, path: str | os.PathLike) -> Self:
        self._cwd = str(path)
        return self

    def command(self) -> list[str]:
        cmd = [self._cmd, *self._args]
        for k, v in self._opts.items():
            cmd.extend([f"--{k}", v])
        return cmd

    def build(self) -> subprocess.Popen:
        return subprocess.Popen(self.command(), **asdict(self._proc_opts), cwd=self._cwd)
