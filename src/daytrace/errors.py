"""Exceptions raised at the edges of the pipeline.

The pipeline itself never raises on bad data: malformed samples, sessions and
events are dropped. These exceptions only cover the file-level concerns of
loading configuration and day exports.
"""


class DaytraceError(Exception):
    """Base class for daytrace errors."""


class ConfigError(DaytraceError):
    """Raised when the configuration file exists but is not a YAML mapping."""


class ExportError(DaytraceError):
    """Raised when a day export file is missing or is not valid JSON.

    Individual malformed records inside a valid export are skipped instead.
    """
