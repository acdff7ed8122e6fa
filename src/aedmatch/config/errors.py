"""Configuration error definitions.

Every error names the environment variable(s) at fault so the CLI can print
an actionable message and exit with a usage status.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""

    def __init__(self, message: str, *, variables: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.variables = variables


class MissingConfigurationError(ConfigurationError):
    """Raised when required environment variables are absent or blank."""

    def __init__(self, variables: tuple[str, ...]) -> None:
        super().__init__(
            f"Missing configuration for: {', '.join(variables)}", variables=variables
        )


class InvalidConfigurationValueError(ConfigurationError):
    """Raised when an environment variable is set but cannot be used."""

    def __init__(self, variable: str, raw: str, *, expected: str) -> None:
        super().__init__(
            f"Invalid value for {variable}: {raw!r} (expected {expected})",
            variables=(variable,),
        )
        self.raw = raw
