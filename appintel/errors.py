"""
Exceptions that cross component boundaries.

Recoverable, single-unit failures (one app's reviews, one screenshot) are
absorbed where they happen and turned into empty results. Only the errors
below are allowed to reach the top-level caller.
"""


class AppIntelError(Exception):
    """Base class for every error the CLI reports and exits on."""


class MissingCredentialError(AppIntelError):
    """No LLM API key configured."""


class NoAppsFoundError(AppIntelError):
    """The keyword produced no apps (or no reviews) to work with."""


class InvalidPathError(AppIntelError):
    """A screenshot directory does not exist or holds no images."""


class DataIntegrityError(AppIntelError):
    """A record failed validation on a required field."""


class CatalogError(AppIntelError):
    """The iTunes catalog answered with an HTTP error."""


class AnalysisFailedError(AppIntelError):
    """The LLM call behind an analysis came back with an error."""


class RateLimitError(Exception):
    """The App Store web front-end answered 429."""
