"""Error kinds raised by the tpanel services.

Each error carries the HTTP status the dashboard answers with, so the web
layer can map failures without knowing every kind.
"""


class PanelError(Exception):
    """Base class for all tpanel errors."""

    status_code = 500


class NotFound(PanelError):
    """An app id is not present in the registry or installed list."""

    status_code = 404


class ValidationError(PanelError):
    """User-supplied configuration is malformed."""

    status_code = 422


class AlreadyInstalled(PanelError):
    """The app id is already in the installed list."""

    status_code = 409


class NotSupported(PanelError):
    """The registry entry asks for an install type we have no installer for."""

    status_code = 400


class InstallError(PanelError):
    """The package installer failed."""

    status_code = 502


class SupervisorError(PanelError):
    """The process supervisor rejected or failed an operation."""

    status_code = 502


class ProcessNotFound(SupervisorError):
    """The supervisor does not know the process id."""

    status_code = 404


class StoreError(PanelError):
    """Reading or writing a state file failed."""

    status_code = 500
