#!/usr/bin/env python3
"""Bootstrap zig from the wasm seed using only a host C compiler.

Runs the fixed stage sequence from the root of a zig source checkout:

  1. build zig-wasm2c from stage1/wasm2c.c
  2. translate stage1/zig1.wasm to zig1.c
  3. build zig1 from zig1.c + stage1/wasi.c
  4. write config.zig (the build_options module)
  5. zig1 build-exe: emit zig2.c
  6. zig1 build-obj: emit compiler_rt.c
  7. link zig2 from zig2.c + compiler_rt.c

Stages run one at a time, in order, each blocking until its child exits.
The first stage that fails aborts the whole run: later stages never
start, earlier outputs are left in place and nothing is retried.  Re-run
from scratch after fixing the cause.

Usage:
    zig_bootstrap.py [--workdir DIR] [--cc CC] [--zig-version VER]
                     [--timeout SECONDS] [--config FILE] [--dry-run]
"""

import argparse
import enum
import functools
import os
import re
import sys
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from _env import exe_name
from _errors import ArtifactWriteFailure, BootstrapError, ResolutionFailure
from bootstrap_config import load_settings_file, resolve_settings
from command_runner import (
    AbnormalTermination,
    ArgVector,
    NonZeroExit,
    SpawnFailure,
    default_runner,
    format_command,
)
from host_triple import detect_os, host_triple
from zig_config import CONFIG_FILENAME, check_version, write_config

# zig2 recurses deeply in semantic analysis; the default 8M main thread
# stack is not enough.
_STACK_SIZE = "0x10000000"

# MSVC-style drivers reject -pthread.
_NO_PTHREAD_DRIVERS = frozenset({"cl", "clang-cl"})


class ErrorKind(enum.Enum):
    SPAWN_FAILURE = "SpawnFailure"
    NON_ZERO_EXIT = "NonZeroExit"
    ABNORMAL_TERMINATION = "AbnormalTermination"
    RESOLUTION_FAILURE = "ResolutionFailure"
    ARTIFACT_WRITE_FAILURE = "ArtifactWriteFailure"


_VERDICT_KINDS = {
    SpawnFailure: ErrorKind.SPAWN_FAILURE,
    NonZeroExit: ErrorKind.NON_ZERO_EXIT,
    AbnormalTermination: ErrorKind.ABNORMAL_TERMINATION,
}


@dataclass(frozen=True)
class Ok:
    ok = True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    reason: str
    ok = False


StageResult = Union[Ok, Err]


@dataclass(frozen=True)
class Stage:
    """One pipeline step: either a command to run or an in-process action.

    *command* is called right before the stage runs and returns the
    argument vector; *action* performs a side effect such as writing a
    file and raises BootstrapError on failure.
    """

    description: str
    command: Optional[Callable[[], Sequence[str]]] = None
    action: Optional[Callable[[], object]] = None

    def __post_init__(self):
        if (self.command is None) == (self.action is None):
            raise ValueError(f"stage {self.description!r} needs exactly one of command or action")


def run_stage(stage, runner, dry_run=False):
    """Run one stage and fold every failure into an Err."""
    try:
        if stage.command is not None:
            argv = ArgVector(stage.command())
            if dry_run:
                print(format_command(argv))
                return Ok()
            verdict = runner.execute(argv)
            if verdict.ok:
                return Ok()
            return Err(_VERDICT_KINDS[type(verdict)], verdict.reason)
        if dry_run:
            print(f"# {stage.description}")
            return Ok()
        stage.action()
        return Ok()
    except ResolutionFailure as e:
        return Err(ErrorKind.RESOLUTION_FAILURE, str(e))
    except ArtifactWriteFailure as e:
        return Err(ErrorKind.ARTIFACT_WRITE_FAILURE, str(e))


class PipelineState(enum.Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PipelineOutcome:
    state: PipelineState
    stage_index: Optional[int] = None
    error: Optional[Err] = None


class BuildPipeline:
    """Fixed, ordered list of stages with fail-fast execution.

    NOT_STARTED -> RUNNING(i) -> COMPLETED | ABORTED(i, error).  A pipeline
    runs once; there is no resume from the failed stage.
    """

    def __init__(self, stages, runner, dry_run=False):
        self.stages = tuple(stages)
        self.runner = runner
        self.dry_run = dry_run
        self.state = PipelineState.NOT_STARTED
        self.current = None

    def run(self):
        if self.state is not PipelineState.NOT_STARTED:
            raise RuntimeError(f"pipeline already {self.state.value}")
        for index, stage in enumerate(self.stages):
            self.state = PipelineState.RUNNING
            self.current = index
            print(f"==> {stage.description}", file=sys.stderr, flush=True)
            result = run_stage(stage, self.runner, self.dry_run)
            if not result.ok:
                self.state = PipelineState.ABORTED
                return PipelineOutcome(self.state, index, result)
        self.state = PipelineState.COMPLETED
        return PipelineOutcome(self.state)


def _accepts_pthread(cc):
    # CC may be a Windows path even when the host separator is "/"
    name = re.split(r"[\\/]", cc)[-1]
    if name.lower().endswith(".exe"):
        name = name[:-4]
    return name.lower() not in _NO_PTHREAD_DRIVERS


def _command(argv):
    return functools.partial(ArgVector, argv)


def zig_stages(settings, triple, host_os=None):
    """Return the seven bootstrap stages for a zig source checkout.

    *host_os* is the OS this process runs on (not the -target OS); it
    picks the executable suffix and the linker's stack-size syntax.
    """
    if host_os is None:
        host_os = detect_os()
    cc = settings.cc
    wasm2c = exe_name("zig-wasm2c", host_os)
    zig1 = exe_name("zig1", host_os)
    zig2 = exe_name("zig2", host_os)

    if host_os == "macos":
        stack_flag = "-Wl,-stack_size," + _STACK_SIZE
    else:
        stack_flag = "-Wl,-z,stack-size=" + _STACK_SIZE
    link_argv = [
        cc, "-o", zig2, "zig2.c", "compiler_rt.c",
        "-std=c99", "-O2", "-fno-stack-protector",
        "-Istage1",
        stack_flag,
    ]
    if _accepts_pthread(cc):
        link_argv.append("-pthread")

    return [
        Stage("build zig-wasm2c", _command([
            cc, "-o", wasm2c, "stage1/wasm2c.c", "-O2", "-std=c99",
        ])),
        Stage("translate zig1.wasm to C", _command([
            "./" + wasm2c, "stage1/zig1.wasm", "zig1.c",
        ])),
        Stage("build zig1", _command([
            cc, "-o", zig1, "zig1.c", "stage1/wasi.c", "-std=c99", "-Os", "-lm",
        ])),
        Stage(f"write {CONFIG_FILENAME}", action=functools.partial(
            write_config, CONFIG_FILENAME, settings.zig_version)),
        Stage("emit zig2.c", _command([
            "./" + zig1, "lib", "build-exe",
            "-ofmt=c", "-lc", "-OReleaseSmall",
            "--name", "zig2", "-femit-bin=zig2.c",
            "-target", triple,
            "--dep", "build_options",
            "--dep", "aro",
            "-Mroot=src/main.zig",
            "-Mbuild_options=" + CONFIG_FILENAME,
            "-Maro=lib/compiler/aro/aro.zig",
        ])),
        Stage("emit compiler_rt.c", _command([
            "./" + zig1, "lib", "build-obj",
            "-ofmt=c", "-ODebug",
            "--name", "compiler_rt", "-femit-bin=compiler_rt.c",
            "-target", triple,
            "-Mroot=lib/compiler_rt.zig",
        ])),
        Stage("link zig2", _command(link_argv)),
    ]


def main(argv=None, runner=None):
    parser = argparse.ArgumentParser(description="Bootstrap zig from the wasm seed")
    parser.add_argument("--workdir", default=None,
                        help="zig source checkout to build in (default: current directory)")
    parser.add_argument("--cc", default=None,
                        help="Host C compiler (default: $CC, then cc)")
    parser.add_argument("--zig-version", default=None,
                        help="Version string written to config.zig")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Per-stage timeout in seconds (default: wait forever)")
    parser.add_argument("--config", default=None,
                        help="YAML settings file")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the stage commands without running them")
    args = parser.parse_args(argv)
    if args.timeout is not None and args.timeout <= 0:
        parser.error("--timeout must be positive")

    try:
        file_values = load_settings_file(args.config) if args.config else {}
        settings = resolve_settings({
            "cc": args.cc,
            "zig_version": args.zig_version,
            "workdir": args.workdir,
            "timeout": args.timeout,
        }, file_values)
        check_version(settings.zig_version)
        triple = settings.host_triple or host_triple()
    except BootstrapError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)

    # A CC given as a path is relative to where we were started, not to
    # the workdir the stages run in.
    if "/" in settings.cc or os.sep in settings.cc:
        settings.cc = os.path.abspath(settings.cc)

    if runner is None:
        runner = default_runner(timeout=settings.timeout)
    stages = zig_stages(settings, triple)
    pipeline = BuildPipeline(stages, runner, dry_run=args.dry_run)

    orig = os.getcwd()
    try:
        os.chdir(settings.workdir)
    except OSError as e:
        print(f"error: cannot enter {settings.workdir}: {e.strerror or e}", file=sys.stderr)
        sys.exit(1)
    try:
        outcome = pipeline.run()
    finally:
        os.chdir(orig)

    if outcome.state is not PipelineState.COMPLETED:
        stage = stages[outcome.stage_index]
        print(f"error: stage {outcome.stage_index + 1}/{len(stages)} "
              f"({stage.description}) failed: {outcome.error.reason}", file=sys.stderr)
        sys.exit(1)
    return 0


if __name__ == "__main__":
    main()
