"""
Detection exceptions
"""


class DetectionError(Exception):
    """Base class for scan-level failures surfaced to the caller"""


class DetectionCancelled(DetectionError):
    """Raised when a scan is aborted by the caller or by cancel()"""

    def __init__(self, message: str = "Detection cancelled"):
        super().__init__(message)


class ScanRangeError(DetectionError, ValueError):
    """Malformed or unsupported scan range"""
