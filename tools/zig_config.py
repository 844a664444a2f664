#!/usr/bin/env python3
"""Generate the build_options module (config.zig) for the zig2 build.

zig1 imports this file as `build_options` when compiling zig2.c.  The
declarations are fixed for a bootstrap build: no LLVM, every debug and
tracing feature off, the `core` dev set.  Only the version string varies.

The file is written in full or the bootstrap stops: a failed open, a
short write and a failed close all raise ArtifactWriteFailure.
"""

import argparse
import sys

from _errors import ArtifactWriteFailure

DEFAULT_ZIG_VERSION = "0.14.0-dev.bootstrap"
CONFIG_FILENAME = "config.zig"

_CONFIG_TEMPLATE = """\
pub const have_llvm = false;
pub const llvm_has_m68k = false;
pub const llvm_has_csky = false;
pub const llvm_has_arc = false;
pub const llvm_has_xtensa = false;
pub const version: [:0]const u8 = "{version}";
pub const semver = @import("std").SemanticVersion.parse(version) catch unreachable;
pub const enable_debug_extensions = false;
pub const enable_logging = false;
pub const enable_link_snapshots = false;
pub const enable_tracy = false;
pub const value_tracing = false;
pub const skip_non_native = false;
pub const debug_gpa = false;
pub const dev = .core;
pub const value_interpret_mode = .direct;
"""


def check_version(version):
    """Raise ArtifactWriteFailure if *version* cannot go into config.zig."""
    if '"' in version or "\\" in version or "\n" in version:
        raise ArtifactWriteFailure(
            f"version {version!r} cannot be embedded in a zig string literal")


def render_config(version=DEFAULT_ZIG_VERSION):
    """Return the full text of config.zig for *version*."""
    check_version(version)
    return _CONFIG_TEMPLATE.format(version=version)


def write_config(path=CONFIG_FILENAME, version=DEFAULT_ZIG_VERSION):
    """Write config.zig to *path* and return the number of bytes written.

    The file is opened unbuffered so the count returned by write() is what
    reached the OS, and compared against the rendered length.
    """
    data = render_config(version).encode("utf-8")
    try:
        f = open(path, "wb", buffering=0)
    except OSError as e:
        raise ArtifactWriteFailure(
            f"unable to open {path} for writing: {e.strerror or e}") from e

    write_error = None
    written = 0
    try:
        written = f.write(data)
    except OSError as e:
        write_error = e
    try:
        f.close()
    except OSError as e:
        if write_error is None:
            raise ArtifactWriteFailure(
                f"unable to finish writing to {path}: {e.strerror or e}") from e
    if write_error is not None:
        raise ArtifactWriteFailure(
            f"unable to write to {path}: {write_error.strerror or write_error}"
        ) from write_error

    if written != len(data):
        raise ArtifactWriteFailure(
            f"unable to write to {path}: wrote {written} of {len(data)} bytes")
    return written


def main():
    parser = argparse.ArgumentParser(description="Generate config.zig for the zig2 build")
    parser.add_argument("--output", default=CONFIG_FILENAME,
                        help=f"Output path (default: {CONFIG_FILENAME})")
    parser.add_argument("--zig-version", default=DEFAULT_ZIG_VERSION,
                        help=f"Version string (default: {DEFAULT_ZIG_VERSION})")
    args = parser.parse_args()

    try:
        write_config(args.output, args.zig_version)
    except ArtifactWriteFailure as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
