"""
Error taxonomy of the persistence core.

Every error carries a stable ``code`` string. The API layer maps the local
validation errors (`NotFound`, `Forbidden`, `Conflict`) and the fatal
resource errors (`StorageExhausted`, `SnapshotCorrupt`) to HTTP statuses;
inference errors never reach the caller of a turn submission, they are
recorded on the failed assistant message instead.
"""


class CoachError(Exception):
    """Base class of all errors raised by the core."""

    code = "CoachError"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


class NotFound(CoachError):
    """Unknown conversation or message id."""

    code = "NotFound"


class Forbidden(CoachError):
    """The presented identity does not own the conversation."""

    code = "Forbidden"


class Conflict(CoachError):
    """A second turn was submitted while one is pending, or a turn was resolved twice."""

    code = "Conflict"


class InferenceUnavailable(CoachError):
    """The inference endpoint failed on every attempt."""

    code = "InferenceUnavailable"


class InferenceTimeout(InferenceUnavailable):
    """Retries exhausted, the last attempt having timed out."""

    code = "InferenceTimeout"


class InferenceMalformedResponse(CoachError):
    """The inference endpoint answered with empty or unusable content."""

    code = "InferenceMalformedResponse"


class StorageExhausted(CoachError):
    """The entity store reached its configured capacity."""

    code = "StorageExhausted"


class SnapshotCorrupt(CoachError):
    """A snapshot could not be rehydrated. Blocks the store until resolved."""

    code = "SnapshotCorrupt"
