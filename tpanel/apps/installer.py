"""Package installer adapters."""

import logging
from abc import ABC, abstractmethod

from ..commands import CommandTimeout, run_command
from ..errors import InstallError, NotSupported
from .models import InstallSpec

logger = logging.getLogger(__name__)


class PackageInstaller(ABC):
    """Installs packages of one install type."""

    @property
    @abstractmethod
    def install_type(self) -> str:
        """The registry install type this installer handles (e.g. "npm")."""
        pass

    @abstractmethod
    async def install(self, package: str) -> None:
        """Install a package, returning once it is in place.

        Raises:
            InstallError: If the installation fails.
        """
        pass


class NpmInstaller(PackageInstaller):
    """Installs npm packages locally into a working directory.

    Local installs avoid needing write access to the global prefix; the
    package's binaries end up under ``node_modules/.bin``.
    """

    def __init__(self, workdir: str = ".", npm_command: str = "npm", timeout: float = 300.0):
        self.workdir = workdir
        self.npm_command = npm_command
        self.timeout = timeout

    @property
    def install_type(self) -> str:
        return "npm"

    async def install(self, package: str) -> None:
        cmd = [self.npm_command, "install", package]
        logger.info(f"Installing locally: {' '.join(cmd)}")

        try:
            result = await run_command(cmd, cwd=self.workdir, timeout=self.timeout)
        except FileNotFoundError as e:
            raise InstallError(f"npm executable not found: {self.npm_command}") from e
        except CommandTimeout as e:
            raise InstallError(f"Failed to install package '{package}': {e}") from e

        if result.stdout.strip():
            logger.debug(result.stdout.strip())

        if not result.ok:
            raise InstallError(
                f"Failed to install package '{package}' "
                f"(exit {result.returncode}): {result.output_tail()}"
            )

        if result.stderr.strip():
            logger.warning(f"npm reported for '{package}': {result.output_tail()}")


class InstallerRegistry:
    """Dispatches install specs to the installer for their type."""

    def __init__(self, installers: list[PackageInstaller] | None = None):
        self._installers: dict[str, PackageInstaller] = {}
        for installer in installers or []:
            self.register(installer)

    def register(self, installer: PackageInstaller) -> None:
        self._installers[installer.install_type] = installer

    @property
    def install_types(self) -> list[str]:
        return list(self._installers.keys())

    def get(self, install_type: str) -> PackageInstaller:
        """Return the installer for a type.

        Raises:
            NotSupported: If no installer handles the type.
        """
        if installer := self._installers.get(install_type):
            return installer
        raise NotSupported(f"Install type '{install_type}' is not supported")

    async def install(self, spec: InstallSpec) -> None:
        await self.get(spec.type).install(spec.package)
