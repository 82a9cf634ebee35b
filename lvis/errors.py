class ConfigError(Exception):
    """Fatal configuration problem, reported before any trial runs."""


class PatternSearchError(ConfigError):
    """Random output patterns could not satisfy the minimum-difference constraint."""
