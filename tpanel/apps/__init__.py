"""App registry, installation and lifecycle control.

The AppManager is the entry point; installers and supervisors are adapters
over external tools (npm, PM2) and can be swapped for fakes in tests.
"""

from .installer import InstallerRegistry, NpmInstaller, PackageInstaller
from .manager import AppManager, merge_config, resolve_port, substitute_port
from .models import InstalledApp, InstallSpec, ProcessSpec, RegistryEntry
from .supervisor import PM2Supervisor, ProcessSupervisor

__all__ = [
    "AppManager",
    "InstallerRegistry",
    "InstallSpec",
    "InstalledApp",
    "NpmInstaller",
    "PM2Supervisor",
    "PackageInstaller",
    "ProcessSpec",
    "ProcessSupervisor",
    "RegistryEntry",
    "merge_config",
    "resolve_port",
    "substitute_port",
]
