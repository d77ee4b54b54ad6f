"""
FLOWSWATH Exceptions
====================

Custom exception classes for FLOWSWATH stream and swath extraction.
"""


class FlowSwathError(Exception):
    """Base exception for FLOWSWATH errors."""

    pass


class DEMError(FlowSwathError):
    """Exception raised for DEM-related errors."""

    pass


class StreamError(FlowSwathError):
    """Exception raised for stream network extraction errors."""

    pass


class SwathError(FlowSwathError):
    """Exception raised for swath sampling and reduction errors."""

    pass


class ValidationError(FlowSwathError):
    """Exception raised for input validation errors."""

    pass


class ConfigurationError(FlowSwathError):
    """Exception raised for configuration errors."""

    pass
