"""Shared environment lookups for the bootstrap helpers.

The bootstrap reads a handful of variables from the host environment:
the C compiler (CC) and the per-field host target overrides
(ZIG_HOST_TARGET_*).  An override only counts when it is set to a
non-empty value; an empty string behaves like an unset variable.
"""

import os

DEFAULT_CC = "cc"

# Host target override variables, checked in this order by host_triple.
HOST_TRIPLE_VAR = "ZIG_HOST_TARGET_TRIPLE"
HOST_OS_VAR = "ZIG_HOST_TARGET_OS"
HOST_ARCH_VAR = "ZIG_HOST_TARGET_ARCH"
HOST_ABI_VAR = "ZIG_HOST_TARGET_ABI"


def env_override(name, environ=None):
    """Return the value of *name* if set and non-empty, else None."""
    if environ is None:
        environ = os.environ
    val = environ.get(name)
    if not val:
        return None
    return val


def c_compiler(environ=None):
    """Return the host C compiler from CC, or the conventional default."""
    return env_override("CC", environ) or DEFAULT_CC


def exe_name(name, os_name):
    """Append the executable suffix the target OS expects."""
    if os_name == "windows":
        return name + ".exe"
    return name
