"""
Error taxonomy for the inspection report engine.

  - ValidationError:         bad measurement / label input, raised before any
                             collection is changed
  - ImageResolutionWarning:  one image could not be read, decoded or
                             optimized; always converted to a placeholder
  - MissingInspectionError:  no inspection record handed to the composer
"""

from __future__ import annotations


class InspectionReportError(Exception):
    """Base class for errors raised by the engine."""


class ValidationError(InspectionReportError, ValueError):
    """Rejected input for a mutating annotation helper."""


class MissingInspectionError(InspectionReportError):
    """Report composition was requested without an inspection record."""

    def __init__(self, message: str = "No inspection record supplied; cannot generate report."):
        super().__init__(message)


class ImageResolutionWarning(UserWarning):
    """Non-fatal failure while turning an image reference into embeddable bytes."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")
