"""Exception hierarchy for bugment.

Everything raised on purpose by bugment derives from BugmentError so the CLI
can turn it into a clean exit code. Parse-level problems in diffs or AI
output are never raised; they are logged and the offending fragment is
skipped.
"""

from __future__ import annotations


class BugmentError(Exception):
    """Base class for all bugment errors."""


class ConfigError(BugmentError):
    """Missing or invalid configuration (credentials, server path, options)."""


class DiffError(BugmentError):
    """No diff could be produced from either git or the GitHub compare API."""


class ReviewError(BugmentError):
    """The AI review call failed and produced no output."""


class AugmentError(BugmentError):
    """Base class for failures talking to the Augment language server."""


class AugmentConnectionError(AugmentError):
    """The server process could not be started, or its channel closed."""


class AugmentTimeoutError(AugmentError):
    """A request, the startup phase or workspace sync ran out of time."""


class AugmentRPCError(AugmentError):
    """The server answered a request with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data=None):
        super().__init__(f"JSON-RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data
