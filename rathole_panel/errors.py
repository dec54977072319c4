"""Exception hierarchy for the rathole panel."""


class PanelError(Exception):
    """Base error type for all panel failures."""


class SupervisorError(PanelError):
    """Spawning or killing the rathole process failed."""


class LocatorError(PanelError):
    """The rathole binary could not be queried or updated."""


class BinaryNotFoundError(LocatorError):
    """No locally installed rathole binary exists."""

    def __init__(self, message: str = "No installed rathole found"):
        super().__init__(message)


class InstallError(PanelError):
    """Downloading or unpacking a release archive failed."""


class ConfigFileError(PanelError):
    """Reading or writing a rathole config file failed."""
