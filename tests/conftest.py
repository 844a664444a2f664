from __future__ import annotations

import json
import os
import stat
import sys
from pathlib import Path

import pytest

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

from command_runner import ArgVector, Success  # noqa: E402

HOST_ENV_VARS = (
    "ZIG_HOST_TARGET_TRIPLE",
    "ZIG_HOST_TARGET_OS",
    "ZIG_HOST_TARGET_ARCH",
    "ZIG_HOST_TARGET_ABI",
)

_ECHO_SCRIPT = """\
import json
import sys

with open(sys.argv[1], "w", encoding="utf-8") as f:
    json.dump(sys.argv[2:], f)
"""


class RecordingRunner:
    """CommandRunner stand-in: records every argv, fails on request.

    *fail_on* maps a program name (argv[0]) to the verdict to return for it.
    """

    def __init__(self, fail_on=None):
        self.calls: list[ArgVector] = []
        self.fail_on = dict(fail_on or {})

    def execute(self, argv):
        argv = ArgVector(argv)
        self.calls.append(argv)
        return self.fail_on.get(argv.program, Success())

    @property
    def programs(self) -> list[str]:
        return [argv.program for argv in self.calls]


@pytest.fixture
def recording_runner():
    return RecordingRunner()


@pytest.fixture
def clean_host_env(monkeypatch):
    """Drop all ZIG_HOST_TARGET_* overrides and the memoized triple."""
    import host_triple

    for var in HOST_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    host_triple.host_triple.cache_clear()
    yield monkeypatch
    host_triple.host_triple.cache_clear()


@pytest.fixture
def echo_args(tmp_path: Path):
    """Callable wrapper: echo_args(runner, *args) -> list of args the child saw."""
    script = tmp_path / "echo_args.py"
    script.write_text(_ECHO_SCRIPT)
    out = tmp_path / "argv.json"

    def _run(runner, *args: str):
        verdict = runner.execute([sys.executable, str(script), str(out), *args])
        assert verdict.ok, verdict.reason
        return json.loads(out.read_text(encoding="utf-8"))

    return _run


def _make_executable(path: Path, text: str):
    path.write_text(text)
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.fixture
def fake_cc(tmp_path: Path):
    """Build a stand-in C compiler inside a fake zig checkout.

    The compiler writes an executable Python stub to its -o path and logs
    its arguments to cc.log.  Returns (workdir, make) where
    make(fail_if=None) creates the compiler and returns its path; the
    compiler exits 3 when *fail_if* appears among its arguments.
    """
    workdir = tmp_path / "zig"
    (workdir / "stage1").mkdir(parents=True)

    def make(fail_if=None):
        cc = tmp_path / "fake-cc"
        fail_check = ""
        if fail_if is not None:
            fail_check = f"if {fail_if!r} in sys.argv[1:]:\n    sys.exit(3)\n"
        _make_executable(cc, (
            f"#!{sys.executable}\n"
            "import os\n"
            "import sys\n"
            "with open('cc.log', 'a') as log:\n"
            "    log.write(' '.join(sys.argv[1:]) + '\\n')\n"
            f"{fail_check}"
            "out = sys.argv[sys.argv.index('-o') + 1]\n"
            "with open(out, 'w') as f:\n"
            f"    f.write('#!{sys.executable}\\nimport sys\\nsys.exit(0)\\n')\n"
            "os.chmod(out, 0o755)\n"
        ))
        return str(cc)

    return workdir, make
