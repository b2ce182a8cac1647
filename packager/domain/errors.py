class ConfigurationError(ValueError):
    """Raised when the packager configuration cannot be loaded or validated."""


class ReleaseSourceError(Exception):
    """Raised when a release cannot be discovered, downloaded or extracted."""


class VersionResolutionError(Exception):
    """Raised when the version number of a release tree cannot be determined."""
