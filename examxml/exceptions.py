"""
Exceptions
==========
Error classes raised by the converter. ``DataError`` and its subclasses carry
an HTTP-style status code so the service layer can answer with it directly.
"""

from __future__ import annotations


class ExamXmlError(Exception):
    """Base class for conversion failures."""


class DataError(ExamXmlError):
    """Raised when exam data cannot be turned into a usable document."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConversionError(DataError):
    """Raised when JSON content → mastered XML conversion fails."""


class MasteringError(DataError):
    """Raised when mastering a hand-written exam XML fails."""


class MissingMetadataError(DataError):
    """Raised when a media attachment has no recorded metadata."""

    def __init__(self, filename: str):
        super().__init__(
            f"Missing metadata for attachment: {filename}. Cannot convert"
        )
        self.filename = filename


class UnsupportedQuestionTypeError(ExamXmlError):
    """Raised when a question type has no builder."""

    def __init__(self, question_type: str):
        super().__init__(f"Unsupported question type '{question_type}'")
        self.question_type = question_type
