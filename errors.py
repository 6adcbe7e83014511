"""
Error taxonomy for the ID intake service.

Unresolved fields, missing faces and unavailable comparisons are *not*
errors; they come back as values. Only the cases below are raised.
"""


class IntakeError(Exception):
    """Base class for errors raised by the intake pipeline."""


class OCRFailure(IntakeError):
    """The OCR backend raised or the image could not be read."""

    user_message = "Text extraction failed"


class UnsupportedDocumentType(IntakeError, ValueError):
    """Document type outside {aadhaar, pan, other}."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unsupported ID type: {value!r}")


class StaleRunError(IntakeError):
    """A run finished after a newer run for the same role had started."""

    def __init__(self, role: str, generation: int, current: int):
        self.role = role
        self.generation = generation
        self.current = current
        super().__init__(
            f"Discarding stale {role} run #{generation} (current run is #{current})"
        )
