#!/usr/bin/env python3
"""Run one external command and reduce its outcome to a verdict.

Two process-creation strategies sit behind the same CommandRunner
contract:

  PosixRunner    hands the argument vector straight to the OS
                 (fork/exec through subprocess); nothing is joined or
                 re-quoted, every element reaches the child byte for byte.
  WindowsRunner  CreateProcessW only takes a single command-line string,
                 so the vector is flattened with the quoting rules the
                 child's C runtime uses to split it back apart.

Both echo the command to stderr before spawning, block until the child
exits, and map the exit status onto one of Success, NonZeroExit,
AbnormalTermination or SpawnFailure.  No exception escapes execute()
for a failed child; callers inspect the verdict.

Usage:
    command_runner.py [--timeout SECONDS] -- PROGRAM [ARG...]
"""

import argparse
import subprocess
import sys
from dataclasses import dataclass
from typing import Optional, Protocol, Union

# Characters that force an element into double quotes on the flattened
# command line.  The shell metacharacters only matter when cmd.exe sits
# in between, but quoting them is harmless for a direct CreateProcessW.
_QUOTE_TRIGGERS = frozenset(' \t"\\&|<>^%')

# CreateProcessW rejects command lines of 32768 wide chars or more
# (the limit includes the terminating NUL).
MAX_COMMAND_LINE = 32767

# NTSTATUS error severity; a process that dies from an unhandled
# exception reports its exception code as the exit status.
_NTSTATUS_ERROR = 0xC0000000


class ArgVector(tuple):
    """Immutable, non-empty argument vector for one invocation.

    argv[0] is the program, the rest are passed verbatim.  Elements are
    never split, globbed or otherwise interpreted.
    """

    def __new__(cls, args):
        if isinstance(args, (str, bytes)):
            raise TypeError("argument vector must be a sequence of str, not a single string")
        args = tuple(args)
        if not args:
            raise ValueError("argument vector must not be empty")
        for i, arg in enumerate(args):
            if not isinstance(arg, str):
                raise TypeError(
                    f"argument {i} is {type(arg).__name__}, expected str")
            if "\0" in arg:
                raise ValueError(f"argument {i} contains a NUL character")
        return super().__new__(cls, args)

    @property
    def program(self):
        return self[0]


# ---------------------------------------------------------------------------
# Verdicts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    ok = True

    @property
    def reason(self):
        return "success"


@dataclass(frozen=True)
class NonZeroExit:
    code: int
    ok = False

    @property
    def reason(self):
        return f"child process failed with exit code {self.code}"


@dataclass(frozen=True)
class AbnormalTermination:
    signal: Optional[int] = None
    detail: str = ""
    ok = False

    @property
    def reason(self):
        if self.signal is not None:
            return f"child process crashed (signal {self.signal})"
        if self.detail:
            return f"child process crashed ({self.detail})"
        return "child process crashed"


@dataclass(frozen=True)
class SpawnFailure:
    reason: str
    ok = False


ExecutionVerdict = Union[Success, NonZeroExit, AbnormalTermination, SpawnFailure]


def verdict_from_returncode(returncode, windows=False):
    """Map a Popen returncode onto an ExecutionVerdict.

    subprocess reports death by signal as a negative returncode on POSIX.
    On Windows there are no signals; an exit status carrying the NTSTATUS
    error severity bits is a crash (access violation, stack overflow...).
    """
    if returncode == 0:
        return Success()
    if not windows and returncode < 0:
        return AbnormalTermination(signal=-returncode)
    if windows and returncode >= _NTSTATUS_ERROR:
        return AbnormalTermination(detail=f"status 0x{returncode:08X}")
    return NonZeroExit(returncode)


# ---------------------------------------------------------------------------
# Command-line formatting
# ---------------------------------------------------------------------------

def format_command(argv):
    """Human-readable echo of a command: elements joined by single spaces."""
    return " ".join(argv)


def needs_quoting(arg):
    """True if *arg* must be wrapped in double quotes when flattened.

    An empty element is quoted too, otherwise it would vanish from the
    command line and shift every later argument.
    """
    return not arg or any(c in _QUOTE_TRIGGERS for c in arg)


def _quote(arg):
    # MSVCRT rules: backslashes are literal unless they precede a double
    # quote, in which case they pair up and an odd one escapes the quote.
    out = ['"']
    backslashes = 0
    for ch in arg:
        if ch == "\\":
            backslashes += 1
            continue
        if ch == '"':
            out.append("\\" * (backslashes * 2 + 1))
        else:
            out.append("\\" * backslashes)
        out.append(ch)
        backslashes = 0
    # Trailing backslashes sit right before the closing quote.
    out.append("\\" * (backslashes * 2))
    out.append('"')
    return "".join(out)


def flatten_command_line(argv):
    """Serialize an argument vector into one CreateProcessW command line.

    Elements are joined with a single space.  An element is wrapped in
    double quotes iff it is empty or contains space, tab, ", \\, &, |, <,
    >, ^ or %; inside the quotes embedded quotes and the backslashes that
    precede them are escaped so the child's argv parser gets the original
    element back.  The result is built per call from the actual input;
    there is no fixed-size buffer and nothing is truncated.
    """
    return " ".join(_quote(a) if needs_quoting(a) else a for a in argv)


# ---------------------------------------------------------------------------
# Runners
# ---------------------------------------------------------------------------

class CommandRunner(Protocol):
    def execute(self, argv): ...


def _echo(argv):
    print(format_command(argv), file=sys.stderr, flush=True)


def _wait(proc, timeout, windows=False):
    """Block until *proc* exits and release its handles on every path."""
    with proc:
        try:
            returncode = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
            return AbnormalTermination(detail=f"timed out after {timeout}s")
    return verdict_from_returncode(returncode, windows=windows)


class PosixRunner:
    """Direct vector exec: the argv list goes to execvp untouched."""

    def __init__(self, timeout=None):
        self.timeout = timeout

    def execute(self, argv):
        argv = ArgVector(argv)
        _echo(argv)
        try:
            proc = subprocess.Popen(list(argv))
        except OSError as e:
            return SpawnFailure(f"unable to spawn {argv.program}: {e.strerror or e}")
        return _wait(proc, self.timeout)


class WindowsRunner:
    """Flattened command-line exec for CreateProcessW.

    subprocess passes a str args value through as lpCommandLine without
    further quoting, and converts it to UTF-16 on the way in; the
    diagnostic copy printed on failure is the same str, so it reads back
    exactly as the child would have received it.
    """

    def __init__(self, timeout=None):
        self.timeout = timeout

    def execute(self, argv):
        argv = ArgVector(argv)
        _echo(argv)
        cmdline = flatten_command_line(argv)
        if len(cmdline) >= MAX_COMMAND_LINE:
            return SpawnFailure(
                f"command line is {len(cmdline)} characters, "
                f"CreateProcessW accepts at most {MAX_COMMAND_LINE - 1}")
        try:
            proc = subprocess.Popen(cmdline)
        except OSError as e:
            code = getattr(e, "winerror", None) or e.errno
            print(f"Command line: {cmdline}", file=sys.stderr)
            return SpawnFailure(f"CreateProcessW failed with error {code}")
        return _wait(proc, self.timeout, windows=True)


def default_runner(timeout=None, platform_name=None):
    """Pick the runner for the platform this process runs on."""
    if platform_name is None:
        platform_name = sys.platform
    if platform_name == "win32":
        return WindowsRunner(timeout=timeout)
    return PosixRunner(timeout=timeout)


def main():
    parser = argparse.ArgumentParser(
        description="Run one command the way the bootstrap runs its stages")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Kill the child after this many seconds (default: wait forever)")
    parser.add_argument("--flatten", action="store_true",
                        help="Print the flattened Windows command line and exit")
    parser.add_argument("command", nargs=argparse.REMAINDER,
                        help="Program and arguments")
    args = parser.parse_args()

    command = args.command
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        parser.error("no command given")

    if args.flatten:
        print(flatten_command_line(ArgVector(command)))
        return

    verdict = default_runner(timeout=args.timeout).execute(ArgVector(command))
    if not verdict.ok:
        print(f"error: {verdict.reason}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
