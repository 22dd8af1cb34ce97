from __future__ import annotations

from typing import Optional

from .models import EncodingDiagnosis


class Utf8ColumnsError(Exception):
    """Base class for errors raised by utf8columns."""


class InvalidEncodingError(Utf8ColumnsError, ValueError):
    """
    A stored value is not well-formed UTF-8.

    Raised from the read path (and from the write path when validate_on_write
    is enabled). The offending attribute has already been put back to its raw
    bytes when this is raised.
    """

    def __init__(
        self,
        attribute: str,
        object_type: str,
        raw: bytes = b"",
        diagnosis: Optional[EncodingDiagnosis] = None,
        source: str = "database",
    ) -> None:
        self.attribute = attribute
        self.object_type = object_type
        self.raw = raw
        self.diagnosis = diagnosis
        message = f"Invalid UTF8 from {source} in column '{attribute}' of {object_type}"
        if diagnosis is not None and diagnosis.offset is not None:
            message += f" at byte {diagnosis.offset} ({diagnosis.reason})"
        if diagnosis is not None and diagnosis.detected:
            message += f"; bytes look like {diagnosis.detected}"
        super().__init__(message)
