# ephemserve/core/errors.py
# -----------------------------------------------------------------------------
# Error taxonomy for the ephemeris core.
#
# Every failure that leaves the decoder, the segment search or the body cache
# is one of the classes below. Callers can catch EphemerisError for "anything
# ephemeris related" or a specific subclass for the condition they handle.
#
#   NoMatchingSource  pattern matched zero files (or no data root configured)
#   MalformedRecord   header/record structure is inconsistent; whole open fails
#   DateNotCovered    query date falls in a gap or outside the archive
#   MissingSeries     archive is valid but has no coefficients for a body
#   BodyUnavailable   every loader candidate for a body name failed
#
# A missing physical constant is not an error: see EphemerisArchive.constant.
# -----------------------------------------------------------------------------
from __future__ import annotations

from typing import Any, List, Optional


class EphemerisError(RuntimeError):
    """Categorized error for ephemeris callers."""
    def __init__(self, stage: str, message: str, **context: Any):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message
        self.context = context


class NoMatchingSource(EphemerisError):
    def __init__(self, pattern: str, **context: Any):
        super().__init__("sources", f"no ephemeris file matches '{pattern}'", pattern=pattern, **context)
        self.pattern = pattern


class MalformedRecord(EphemerisError):
    def __init__(self, message: str, *, source: Optional[str] = None, **context: Any):
        if source:
            message = f"{message} [{source}]"
        super().__init__("decode", message, source=source, **context)
        self.source = source


class DateNotCovered(EphemerisError):
    def __init__(self, body: str, date: float, **context: Any):
        super().__init__("query", f"date {date!r} not covered by {body} ephemeris", body=body, date=date, **context)
        self.body = body
        self.date = date


class MissingSeries(EphemerisError):
    def __init__(self, series: str, pattern: str, **context: Any):
        super().__init__("layout", f"archive '{pattern}' holds no {series} coefficients",
                         series=series, pattern=pattern, **context)
        self.series = series


class BodyUnavailable(EphemerisError):
    """Raised by the body cache once the whole loader chain has been tried."""
    def __init__(self, name: str, causes: Optional[List[EphemerisError]] = None):
        causes = list(causes or [])
        detail = "; ".join(str(c) for c in causes) or "no loader configured"
        super().__init__("cache", f"body {name} unavailable ({detail})", name=name)
        self.name = name
        self.causes = causes


__all__ = [
    "EphemerisError",
    "NoMatchingSource",
    "MalformedRecord",
    "DateNotCovered",
    "MissingSeries",
    "BodyUnavailable",
]
