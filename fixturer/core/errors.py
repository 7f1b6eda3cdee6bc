class FixturerError(Exception):
    """Base exception for fixture loading failures."""
    pass


class ConfigError(FixturerError, ValueError):
    """Raised when a configuration value is unusable."""
    pass


class FixtureParseError(FixturerError):
    """Raised when a fixture file does not hold a sequence of mappings."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = f"Can't read fixture {path!r}: {message}"
        super().__init__(self.message)
