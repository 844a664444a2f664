"""Fatal failure types shared by the bootstrap helpers.

Subprocess failures are not exceptions; they come back from the runner
as verdicts.  Everything else that stops the bootstrap raises one of
these, and the pipeline driver turns it into an aborted stage.
"""


class BootstrapError(Exception):
    """Base class for fatal bootstrap failures."""


class ResolutionFailure(BootstrapError):
    """A required host triple field could not be determined."""


class ArtifactWriteFailure(BootstrapError):
    """The generated config file was not fully written or not closed."""


class ConfigError(BootstrapError):
    """The settings file is unreadable or malformed."""
