"""CLI entry point for tpanel."""

import argparse
import asyncio
import inspect
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .apps import AppManager, InstallerRegistry, NpmInstaller, PM2Supervisor, RegistryEntry
from .config import Config, load_config
from .errors import PanelError, ValidationError
from .monitor import SystemMonitor
from .store import REGISTRY, JSONStore


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def build_manager(config: Config) -> AppManager:
    """Wire the store and the npm/PM2 adapters into an AppManager."""
    store = JSONStore(config.store.data_dir)
    supervisor = PM2Supervisor(
        pm2_command=config.supervisor.pm2_command,
        timeout=config.supervisor.timeout_seconds,
    )
    installers = InstallerRegistry(
        [
            NpmInstaller(
                workdir=config.apps.workdir,
                npm_command=config.installer.npm_command,
                timeout=config.installer.timeout_seconds,
            )
        ]
    )
    return AppManager(
        store,
        supervisor,
        installers,
        default_port=config.apps.default_port,
        default_cwd=config.apps.workdir,
    )


def build_monitor(config: Config) -> SystemMonitor:
    return SystemMonitor(
        proc_root=config.monitor.proc_root,
        public_ip_url=config.monitor.public_ip_url,
        network_timeout=config.monitor.network_timeout_seconds,
    )


def parse_overrides(pairs: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` strings into a config mapping.

    Values are parsed as YAML scalars or flow collections, so
    ``args=[start, --port, "{{port}}"]`` yields a list.
    """
    overrides: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            raise ValidationError(f"Expected key=value, got '{pair}'")
        try:
            overrides[key.strip()] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError as e:
            raise ValidationError(f"Cannot parse value for '{key}': {e}") from e
    return overrides


def load_registry_file(path: Path) -> list[dict[str, Any]]:
    """Read registry entries from a YAML or JSON file.

    The file holds either a list of entries or a mapping with an ``apps``
    list. Every entry is validated before anything is written.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get("apps") or []
    if not isinstance(data, list):
        raise ValidationError(f"{path} must contain a list of apps")

    entries = [RegistryEntry.from_dict(item) for item in data]
    ids = [e.id for e in entries]
    if len(ids) != len(set(ids)):
        raise ValidationError(f"{path} contains duplicate app ids")

    return [e.to_dict() for e in entries]


async def cmd_serve(args: argparse.Namespace) -> int:
    """Start the web dashboard."""
    config = load_config(args.config)

    from .dashboard import create_app

    import uvicorn

    host = args.host or config.server.host
    port = args.port or config.server.port

    manager = build_manager(config)
    app = create_app(config, manager=manager, monitor=build_monitor(config))

    print(f"Starting {config.server.title}")
    print(f"Data: {manager.store.data_dir}")
    print(f"URL: http://{host}:{port}")

    verbose = getattr(args, "verbose", False)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
    )
    await server.serve()
    return 0


async def cmd_apps_list(args: argparse.Namespace) -> int:
    """List installed and available apps."""
    manager = build_manager(load_config(args.config))
    apps = await manager.get_all_apps()

    if args.json:
        print(json.dumps(apps, indent=2))
        return 0

    statuses = await manager.process_statuses()

    print("Installed:")
    if not apps["installed"]:
        print("  (none)")
    for app in manager.list_installed():
        status = statuses.get(app.id, app.status or "stopped")
        print(f"  {app.id:<20} {status:<10} {app.name}")

    print()
    print("Available:")
    if not apps["registry"]:
        print("  (none)")
    for entry in manager.list_registry():
        print(f"  {entry.id:<20} {entry.category:<12} {entry.description}")

    return 0


async def cmd_apps_install(args: argparse.Namespace) -> int:
    """Install an app from the registry."""
    manager = build_manager(load_config(args.config))

    user_config = parse_overrides(args.set or [])
    if args.port is not None:
        user_config["port"] = args.port

    installed = await manager.install_app(args.app_id, user_config)
    print(f"Installed {installed.name} ({installed.id})")
    print(f"  args: {' '.join(str(a) for a in installed.config.get('args', []))}")
    return 0


async def cmd_apps_action(args: argparse.Namespace) -> int:
    """Start, stop, restart or uninstall an app."""
    manager = build_manager(load_config(args.config))

    actions = {
        "start": manager.start_app,
        "stop": manager.stop_app,
        "restart": manager.restart_app,
        "uninstall": manager.uninstall_app,
    }
    await actions[args.apps_command](args.app_id)
    print(f"{args.apps_command.capitalize()}: {args.app_id}")
    return 0


def cmd_registry_import(args: argparse.Namespace) -> int:
    """Replace the registry with the entries from a file."""
    config = load_config(args.config)

    if not args.file.exists():
        print(f"Error: Registry file not found: {args.file}", file=sys.stderr)
        return 1

    entries = load_registry_file(args.file)
    store = JSONStore(config.store.data_dir)
    store.save(REGISTRY, entries)

    print(f"Imported {len(entries)} app(s) into {store.path_for(REGISTRY)}")
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Show host stats and network info."""
    monitor = build_monitor(load_config(args.config))

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "stats": await monitor.get_system_stats(),
        "network": await monitor.get_network_info(),
    }

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    stats = status_data["stats"]
    network = status_data["network"]

    print("tpanel Status")
    print("=============")
    print(f"Uptime: {stats['uptime'] / 60:.1f} mins")
    print(f"Load: {', '.join(f'{v:.2f}' for v in stats['load'])}")
    print(f"CPUs: {stats['cpus']}")
    print(
        f"Memory: {stats['memory']['used']} % used "
        f"({stats['memory']['free']} MB free of {stats['memory']['total']} MB)"
    )
    print()
    print(f"Interface: {network['iface_name']}")
    print(f"  Private IP: {network['private_ip']}")
    print(f"  Public IP: {network['public_ip']}")
    print(f"  Gateway: {network['gateway']}")

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="tpanel",
        description="Local dashboard for installing and supervising background apps",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the web dashboard")
    serve_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to run dashboard on (default: from config, 3000)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind dashboard to (default: from config, 0.0.0.0)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # status
    status_parser = subparsers.add_parser("status", help="Show host stats")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")
    status_parser.set_defaults(func=cmd_status)

    # apps
    apps_parser = subparsers.add_parser("apps", help="Manage apps")
    apps_subparsers = apps_parser.add_subparsers(dest="apps_command", help="App commands")

    apps_list = apps_subparsers.add_parser("list", help="List installed and available apps")
    apps_list.add_argument("--json", action="store_true", help="Output as JSON")
    apps_list.set_defaults(func=cmd_apps_list)

    apps_install = apps_subparsers.add_parser("install", help="Install an app from the registry")
    apps_install.add_argument("app_id", help="Registry id of the app")
    apps_install.add_argument("--port", type=str, default=None, help="Port for {{port}} in args")
    apps_install.add_argument(
        "--set",
        action="append",
        metavar="KEY=VALUE",
        help="Override a launch config key (repeatable)",
    )
    apps_install.set_defaults(func=cmd_apps_install)

    for action in ("start", "stop", "restart", "uninstall"):
        action_parser = apps_subparsers.add_parser(action, help=f"{action.capitalize()} an app")
        action_parser.add_argument("app_id", help="Id of the installed app")
        action_parser.set_defaults(func=cmd_apps_action)

    # registry
    registry_parser = subparsers.add_parser("registry", help="Manage the app registry")
    registry_subparsers = registry_parser.add_subparsers(dest="registry_command", help="Registry commands")

    registry_import = registry_subparsers.add_parser("import", help="Load the registry from a YAML/JSON file")
    registry_import.add_argument("file", type=Path, help="Registry file")
    registry_import.set_defaults(func=cmd_registry_import)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "apps" and not args.apps_command:
        apps_parser.print_help()
        return 1

    if args.command == "registry" and not args.registry_command:
        registry_parser.print_help()
        return 1

    func = args.func
    try:
        if inspect.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except PanelError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
