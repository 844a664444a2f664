#!/usr/bin/env python3
"""Resolve the host target triple handed to zig1 via -target.

Each field is resolved independently:
  1. ZIG_HOST_TARGET_{OS,ARCH,ABI} from the environment, used verbatim
  2. detection from the interpreter's platform (sys.platform, machine)
  3. nothing found -> ResolutionFailure for OS/arch; ABI defaults to ""

ZIG_HOST_TARGET_TRIPLE short-circuits all of the above and is returned
unmodified.  There is deliberately no fallback triple: a wrong -target
miscompiles zig2 without any error at this stage.
"""

import functools
import platform
import sys
from dataclasses import dataclass

from _env import (
    HOST_ABI_VAR,
    HOST_ARCH_VAR,
    HOST_OS_VAR,
    HOST_TRIPLE_VAR,
    env_override,
)
from _errors import ResolutionFailure


_OS_BY_PLATFORM = {
    "win32": "windows",
    "darwin": "macos",
    "linux": "linux",
    "haiku": "haiku",
}

_ARCH_BY_MACHINE = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}


def detect_os(platform_name=None):
    """Map a sys.platform value onto a zig OS tag, or None."""
    if platform_name is None:
        platform_name = sys.platform
    if platform_name.startswith("freebsd"):
        return "freebsd"
    return _OS_BY_PLATFORM.get(platform_name)


def detect_arch(machine=None):
    """Map a platform.machine() value onto a zig CPU arch, or None."""
    if machine is None:
        machine = platform.machine()
    return _ARCH_BY_MACHINE.get(machine.lower())


@dataclass(frozen=True)
class HostTriple:
    arch: str
    os: str
    abi: str = ""

    def __str__(self):
        return f"{self.arch}-{self.os}{self.abi}"


def resolve_fields(environ=None, platform_name=None, machine=None):
    """Resolve arch, os and abi into a HostTriple (ignores the full override)."""
    os_name = env_override(HOST_OS_VAR, environ) or detect_os(platform_name)
    if os_name is None:
        raise ResolutionFailure(f"unknown host os, specify with {HOST_OS_VAR}")
    arch = env_override(HOST_ARCH_VAR, environ) or detect_arch(machine)
    if arch is None:
        raise ResolutionFailure(f"unknown host arch, specify with {HOST_ARCH_VAR}")
    abi = env_override(HOST_ABI_VAR, environ) or ""
    return HostTriple(arch=arch, os=os_name, abi=abi)


def resolve_host_triple(environ=None, platform_name=None, machine=None):
    """Return the host triple string, honouring ZIG_HOST_TARGET_TRIPLE first."""
    triple = env_override(HOST_TRIPLE_VAR, environ)
    if triple is not None:
        return triple
    return str(resolve_fields(environ, platform_name, machine))


@functools.lru_cache(maxsize=None)
def host_triple():
    """Process-wide triple, resolved from os.environ on first use."""
    return resolve_host_triple()


def main():
    try:
        print(host_triple())
    except ResolutionFailure as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
