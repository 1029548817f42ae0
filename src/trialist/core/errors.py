"""Exception hierarchy for trial processing.

Data-integrity errors are fatal while the eligible set is being built and
fatal only to the affected trial once normalization has started.  Remote
and normalization failures are always scoped to a single trial, while
repository and configuration failures abort the run.
"""

from typing import Any, Optional


class TrialistError(Exception):
    """Base class for all errors raised by the trial processor."""


class DataIntegrityError(TrialistError):
    """Stored survey data does not have the expected shape."""


class MalformedSurveyError(DataIntegrityError):
    """A survey payload is missing a prompt or holds an unreadable value."""

    def __init__(self, message: str, survey_key: Optional[str] = None, participant_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.survey_key = survey_key
        self.participant_id = participant_id


class UnknownKeyError(DataIntegrityError):
    """A lookup table was asked for a key outside its domain."""

    def __init__(self, table: str, key: Any) -> None:
        super().__init__(f"Unknown key for {table}: {key!r}")
        self.table = table
        self.key = key


class NormalizationError(TrialistError):
    """A single trial could not be turned into a normalized document."""


class AnalysisSubmissionError(TrialistError):
    """The remote analysis service rejected or failed to answer a submission."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RepositoryError(TrialistError):
    """The survey repository could not be read or written."""


class ConfigurationError(TrialistError):
    """Settings or run parameters are missing or invalid."""
