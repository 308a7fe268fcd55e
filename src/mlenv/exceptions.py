"""
Setup Exception Definitions

Each layer raises its own error type; everything derives from SetupError so
the CLI can report failures uniformly.
"""


class SetupError(Exception):
    """Base exception for all environment setup operations."""

    pass


class ConfigError(SetupError):
    """
    Raised when configuration is invalid or malformed.

    @context: YAML loading and settings validation
    """

    pass


class ProbeUnavailableError(SetupError):
    """
    Raised when a vendor tool is missing, fails, or times out.

    @context: Hardware facts collection (always recovered locally)
    """

    pass


class InvalidChoiceError(SetupError):
    """
    Raised when a caller supplies a build option index that does not exist.

    @context: Build resolution
    """

    def __init__(self, choice: int, available: int):
        self.choice = choice
        self.available = available
        super().__init__(
            f"Invalid build option {choice}: expected a value between 1 and {available}"
        )


class InstallError(SetupError):
    """
    Raised when the virtual environment or package installation fails.

    @context: Plan consumer operations
    """

    pass


class BackendValidationError(SetupError):
    """
    Raised when the installed environment cannot be probed.

    @context: Post-install backend validation
    """

    pass
