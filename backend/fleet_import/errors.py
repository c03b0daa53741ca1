"""Exceptions raised by the import pipeline.

Extraction problems and matching misses are *not* exceptions: they are
reported as warning strings and ``None`` links respectively.
"""


class ImportPipelineError(Exception):
    """Base class for import pipeline failures."""


class StoreError(ImportPipelineError):
    """The external record store rejected or failed a request."""


class ImportFailed(ImportPipelineError):
    """Loading files into a preview failed as a whole; the session is idle again."""


class ImportStateError(ImportPipelineError):
    """An operation was requested in a session state that does not allow it."""


class CommitNotAllowed(ImportStateError):
    """Nothing in the working list has a resolved vehicle."""
