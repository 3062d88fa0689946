"""Error taxonomy shared by the sampling engine and its counter sources."""

from __future__ import annotations


class SysUsageError(Exception):
    """Base class for every error raised by sysusage packages."""


class ConfigurationError(SysUsageError, ValueError):
    """Invalid metric setup: unknown unit or field, bad interval, bad state ranges.

    Raised while building a collector; the collector is never constructed.
    """


class SourceError(SysUsageError, OSError):
    """A counter source could not be read or returned malformed data."""
