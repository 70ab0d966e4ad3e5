"""Error taxonomy shared by the workflow engine and its boundaries.

Each error carries the HTTP status it maps to; the API and CLI translate
them, the core only raises.
"""


class TrackerError(Exception):
    """Base class for tracker errors."""

    status_code = 500


class InvalidArgumentError(TrackerError, ValueError):
    """A required field is missing or a value is outside its closed set."""

    status_code = 400


class NotFoundError(TrackerError, LookupError):
    """The record does not exist or is not owned by the caller."""

    status_code = 404
