"""Exceptions raised by the tracker core."""


class StudyTrackerError(Exception):
    """Base class for tracker errors."""


class NotFound(StudyTrackerError):
    """A backup, subject, or other document does not exist."""


class InvalidFormat(StudyTrackerError):
    """An import payload is not a usable backup file."""


class TransientStoreError(StudyTrackerError):
    """The document store failed to read or write."""
