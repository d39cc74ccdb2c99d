"""App lifecycle orchestration.

The AppManager ties together the registry, the installed-apps list, the
package installer and the process supervisor. It holds no state of its own
beyond a lock; everything durable lives in the store and everything running
lives in the supervisor.
"""

import asyncio
import logging
import math
from pathlib import PurePath
from typing import Any

from ..errors import (
    AlreadyInstalled,
    NotFound,
    ProcessNotFound,
    SupervisorError,
    ValidationError,
)
from ..store import INSTALLED, REGISTRY, JSONStore
from .installer import InstallerRegistry
from .models import InstalledApp, ProcessSpec, RegistryEntry
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

PORT_TOKEN = "{{port}}"
DEFAULT_PORT = "8080"


def resolve_port(user_config: dict[str, Any], default: str = DEFAULT_PORT) -> str:
    """Return the port to substitute into launch args.

    Args:
        user_config: Install-time overrides; may carry a "port" key.
        default: Port used when no override is given.

    Raises:
        ValidationError: If "port" is present but not a number.
    """
    value = user_config.get("port")
    if value is None or (isinstance(value, str) and not value.strip()):
        return default

    if isinstance(value, bool):
        raise ValidationError("Invalid port value. Must be a number.")

    try:
        number = float(str(value).strip())
    except ValueError:
        raise ValidationError("Invalid port value. Must be a number.") from None
    if not math.isfinite(number):
        raise ValidationError("Invalid port value. Must be a number.")

    if isinstance(value, str):
        return value.strip()
    if isinstance(value, float) and number.is_integer():
        return str(int(number))
    return str(value)


def substitute_port(args: list[Any], port: str) -> list[Any]:
    """Replace the first {{port}} token of each string arg with the port."""
    return [
        arg.replace(PORT_TOKEN, port, 1) if isinstance(arg, str) and PORT_TOKEN in arg else arg
        for arg in args
    ]


def merge_config(
    defaults: dict[str, Any], user_config: dict[str, Any], default_port: str = DEFAULT_PORT
) -> dict[str, Any]:
    """Overlay user overrides on a registry entry's launch config.

    The overlay is shallow: a user-supplied list such as ``args`` replaces the
    default list entirely. The {{port}} token is then substituted in ``args``.

    Raises:
        ValidationError: If the port is not numeric, or args or env has
            the wrong shape.
    """
    port = resolve_port(user_config, default_port)

    merged = {**defaults, **user_config}

    args = merged.get("args")
    if args is None:
        args = []
    if not isinstance(args, list):
        raise ValidationError("Invalid args value. Must be a list.")
    if not isinstance(merged.get("env") or {}, dict):
        raise ValidationError("Invalid env value. Must be a mapping.")
    for key in ("script", "cwd"):
        if merged.get(key) is not None and not isinstance(merged[key], str):
            raise ValidationError(f"Invalid {key} value. Must be a string.")

    merged["args"] = substitute_port(args, port)
    return merged


class AppManager:
    """Installs apps from the registry and controls their processes."""

    def __init__(
        self,
        store: JSONStore,
        supervisor: ProcessSupervisor,
        installers: InstallerRegistry,
        default_port: str = DEFAULT_PORT,
        default_cwd: str = ".",
    ):
        """Initialize the manager.

        Args:
            store: Holds the registry and installed-app collections.
            supervisor: Runs the installed apps' processes.
            installers: Installers keyed by registry install type.
            default_port: Port used for {{port}} when the user gives none.
            default_cwd: Working directory for apps whose config has no cwd.
        """
        self.store = store
        self.supervisor = supervisor
        self.installers = installers
        self.default_port = str(default_port)
        self.default_cwd = default_cwd
        # Serializes read-modify-write of the installed collection
        self._write_lock = asyncio.Lock()

    # ==================== Queries ====================

    def list_registry(self) -> list[RegistryEntry]:
        return [RegistryEntry.from_dict(r) for r in self.store.get(REGISTRY)]

    def list_installed(self) -> list[InstalledApp]:
        return [InstalledApp.from_dict(r) for r in self.store.get(INSTALLED)]

    def get_registry_entry(self, app_id: str) -> RegistryEntry:
        """Look up a catalog entry.

        Raises:
            NotFound: If the id is not in the registry.
        """
        for record in self.store.get(REGISTRY):
            if record.get("id") == app_id:
                return RegistryEntry.from_dict(record)
        raise NotFound(f"App '{app_id}' not found in registry.")

    async def get_all_apps(self) -> dict[str, list[dict[str, Any]]]:
        """Return the registry and the installed apps, as stored."""
        return {
            "registry": self.store.get(REGISTRY),
            "installed": self.store.get(INSTALLED),
        }

    async def process_statuses(self) -> dict[str, str]:
        """Live status per process name, or {} if the supervisor is unreachable."""
        try:
            return await self.supervisor.list_processes()
        except SupervisorError as e:
            logger.warning(f"Could not read process statuses: {e}")
            return {}

    # ==================== Install / uninstall ====================

    async def install_app(
        self, app_id: str, user_config: dict[str, Any] | None = None
    ) -> InstalledApp:
        """Install a registry app, launch it and record it as installed.

        The steps are not atomic. If the launch fails the package stays
        installed; if saving the record fails the process keeps running
        without a record.

        Args:
            app_id: Registry id of the app.
            user_config: Overrides for the default launch config.

        Returns:
            The persisted installed-app record.

        Raises:
            NotFound: Unknown registry id.
            ValidationError: Malformed user config.
            AlreadyInstalled: The id is already installed.
            NotSupported: No installer for the entry's install type.
            InstallError: The package install failed.
            SupervisorError: The process could not be launched.
            StoreError: The record could not be saved.
        """
        user_config = dict(user_config or {})

        entry = self.get_registry_entry(app_id)
        merged = merge_config(entry.config, user_config, self.default_port)

        async with self._write_lock:
            if any(r.get("id") == app_id for r in self.store.get(INSTALLED)):
                raise AlreadyInstalled(f"App '{app_id}' is already installed.")

            await self.installers.install(entry.install)

            # Record what the process is actually launched with
            merged["script"] = self._resolve_script(entry, merged)
            merged["cwd"] = merged.get("cwd") or self.default_cwd

            spec = ProcessSpec(
                name=entry.id,
                script=merged["script"],
                args=[str(a) for a in merged["args"]],
                env={k: str(v) for k, v in (merged.get("env") or {}).items()},
                cwd=merged["cwd"],
            )
            await self.supervisor.start(spec)

            installed_app = InstalledApp(
                id=entry.id,
                name=entry.name,
                description=entry.description,
                category=entry.category,
                config=merged,
            )
            records = self.store.get(INSTALLED)
            records.append(installed_app.to_dict())
            self.store.save(INSTALLED, records)

        logger.info(f"Installed app '{app_id}'")
        return installed_app

    async def uninstall_app(self, app_id: str) -> None:
        """Remove an app's process from the supervisor, then its record.

        A process the supervisor no longer knows counts as already removed,
        so the record is still dropped. Any other supervisor failure leaves
        the record in place.
        """
        async with self._write_lock:
            try:
                await self.supervisor.delete(app_id)
            except ProcessNotFound:
                logger.warning(f"Process '{app_id}' was not registered with the supervisor")

            records = self.store.get(INSTALLED)
            remaining = [r for r in records if r.get("id") != app_id]
            if len(remaining) != len(records):
                self.store.save(INSTALLED, remaining)

        logger.info(f"Uninstalled app '{app_id}'")

    # ==================== Lifecycle ====================

    async def start_app(self, app_id: str) -> None:
        await self.supervisor.start(app_id)

    async def stop_app(self, app_id: str) -> None:
        await self.supervisor.stop(app_id)

    async def restart_app(self, app_id: str) -> None:
        await self.supervisor.restart(app_id)

    def _resolve_script(self, entry: RegistryEntry, config: dict[str, Any]) -> str:
        """Use the configured script if it is a path, else the package's bin."""
        script = config.get("script") or ""
        if script.startswith("./") or PurePath(script).is_absolute():
            return script
        return f"./node_modules/.bin/{entry.install.package}"
