"""Configuration loading for tpanel."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    title: str = "Termux Panel"


@dataclass
class StoreConfig:
    """Where the registry and installed-app files live."""

    data_dir: str = "~/.tpanel/data"


@dataclass
class AppsConfig:
    """Defaults applied when installing and launching apps."""

    workdir: str = "."  # npm installs here; also the default process cwd
    default_port: str = "8080"


@dataclass
class InstallerConfig:
    npm_command: str = "npm"
    timeout_seconds: float = 300.0


@dataclass
class SupervisorConfig:
    pm2_command: str = "pm2"
    timeout_seconds: float = 30.0


@dataclass
class MonitorConfig:
    proc_root: str = "/proc"
    public_ip_url: str = "https://api.ipify.org"
    network_timeout_seconds: float = 5.0
    process_page_size: int = 10


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    apps: AppsConfig = field(default_factory=AppsConfig)
    installer: InstallerConfig = field(default_factory=InstallerConfig)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with TPANEL_ prefix."""
    return os.environ.get(f"TPANEL_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    if host := _get_env("HOST"):
        config.server.host = host
    if port := _get_env("PORT"):
        config.server.port = int(port)

    # Store and app defaults
    if data_dir := _get_env("DATA_DIR"):
        config.store.data_dir = data_dir
    if workdir := _get_env("WORKDIR"):
        config.apps.workdir = workdir
    if default_port := _get_env("DEFAULT_PORT"):
        config.apps.default_port = default_port

    # External tools
    if npm := _get_env("NPM_COMMAND"):
        config.installer.npm_command = npm
    if install_timeout := _get_env("INSTALL_TIMEOUT"):
        config.installer.timeout_seconds = float(install_timeout)
    if pm2 := _get_env("PM2_COMMAND"):
        config.supervisor.pm2_command = pm2
    if supervisor_timeout := _get_env("SUPERVISOR_TIMEOUT"):
        config.supervisor.timeout_seconds = float(supervisor_timeout)

    # Monitor
    if public_ip_url := _get_env("PUBLIC_IP_URL"):
        config.monitor.public_ip_url = public_ip_url

    return config


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return section


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None or missing, defaults
            are used.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "server" in data:
                server_data = _section(data, "server")
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=int(server_data.get("port", config.server.port)),
                    title=server_data.get("title", config.server.title),
                )

            if "store" in data:
                store_data = _section(data, "store")
                config.store = StoreConfig(
                    data_dir=store_data.get("data_dir", config.store.data_dir),
                )

            if "apps" in data:
                apps_data = _section(data, "apps")
                config.apps = AppsConfig(
                    workdir=apps_data.get("workdir", config.apps.workdir),
                    default_port=str(
                        apps_data.get("default_port", config.apps.default_port)
                    ),
                )

            if "installer" in data:
                installer_data = _section(data, "installer")
                config.installer = InstallerConfig(
                    npm_command=installer_data.get(
                        "npm_command", config.installer.npm_command
                    ),
                    timeout_seconds=installer_data.get(
                        "timeout_seconds", config.installer.timeout_seconds
                    ),
                )

            if "supervisor" in data:
                supervisor_data = _section(data, "supervisor")
                config.supervisor = SupervisorConfig(
                    pm2_command=supervisor_data.get(
                        "pm2_command", config.supervisor.pm2_command
                    ),
                    timeout_seconds=supervisor_data.get(
                        "timeout_seconds", config.supervisor.timeout_seconds
                    ),
                )

            if "monitor" in data:
                monitor_data = _section(data, "monitor")
                config.monitor = MonitorConfig(
                    proc_root=monitor_data.get("proc_root", config.monitor.proc_root),
                    public_ip_url=monitor_data.get(
                        "public_ip_url", config.monitor.public_ip_url
                    ),
                    network_timeout_seconds=monitor_data.get(
                        "network_timeout_seconds",
                        config.monitor.network_timeout_seconds,
                    ),
                    process_page_size=monitor_data.get(
                        "process_page_size", config.monitor.process_page_size
                    ),
                )

    # Apply environment variable overrides
    return _apply_env_overrides(config)
