"""Shared fixtures: a temp JSON store and recording fakes for npm and PM2."""

import asyncio

import pytest

from tpanel.apps import AppManager, InstallerRegistry, PackageInstaller, ProcessSpec, ProcessSupervisor
from tpanel.errors import InstallError, ProcessNotFound, SupervisorError
from tpanel.store import REGISTRY, JSONStore


GHOST = {
    "id": "ghost",
    "name": "Ghost",
    "description": "Publishing platform",
    "category": "cms",
    "install": {"type": "npm", "package": "ghost"},
    "config": {
        "script": "./node_modules/.bin/ghost",
        "args": ["start", "--port", "{{port}}"],
        "env": {"NODE_ENV": "production"},
        "cwd": "",
    },
}

HTTP_SERVER = {
    "id": "http-server",
    "name": "http-server",
    "description": "Static file server",
    "category": "web",
    "install": {"type": "npm", "package": "http-server"},
    "config": {
        "script": "http-server",
        "args": ["./public", "-p", "{{port}}"],
    },
}


class FakeSupervisor(ProcessSupervisor):
    """In-memory process table that records every call."""

    def __init__(self):
        self.calls: list[tuple[str, object]] = []
        self.processes: dict[str, str] = {}
        self.fail_on: set[str] = set()

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise SupervisorError(f"{op} failed")

    async def start(self, spec: ProcessSpec | str) -> None:
        self.calls.append(("start", spec))
        await asyncio.sleep(0)
        self._check("start")
        if isinstance(spec, str):
            if spec not in self.processes:
                raise ProcessNotFound(f"Process '{spec}' not found")
            self.processes[spec] = "online"
        else:
            self.processes[spec.name] = "online"

    async def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        self._check("stop")
        if name not in self.processes:
            raise ProcessNotFound(f"Process '{name}' not found")
        self.processes[name] = "stopped"

    async def restart(self, name: str) -> None:
        self.calls.append(("restart", name))
        self._check("restart")
        if name not in self.processes:
            raise ProcessNotFound(f"Process '{name}' not found")
        self.processes[name] = "online"

    async def delete(self, name: str) -> None:
        self.calls.append(("delete", name))
        self._check("delete")
        if name not in self.processes:
            raise ProcessNotFound(f"Process '{name}' not found")
        del self.processes[name]

    async def list_processes(self) -> dict[str, str]:
        self._check("list")
        return dict(self.processes)

    def ops(self, op: str) -> list[object]:
        return [arg for name, arg in self.calls if name == op]


class FakeInstaller(PackageInstaller):
    """npm installer stand-in recording installed packages."""

    def __init__(self):
        self.installed: list[str] = []
        self.fail = False

    @property
    def install_type(self) -> str:
        return "npm"

    async def install(self, package: str) -> None:
        self.installed.append(package)
        await asyncio.sleep(0)
        if self.fail:
            raise InstallError(f"Failed to install package '{package}'")


@pytest.fixture
def store(tmp_path):
    """JSONStore in a temp directory, seeded with two registry apps."""
    store = JSONStore(tmp_path / "data")
    store.save(REGISTRY, [GHOST, HTTP_SERVER])
    return store


@pytest.fixture
def supervisor():
    return FakeSupervisor()


@pytest.fixture
def installer():
    return FakeInstaller()


@pytest.fixture
def manager(store, supervisor, installer):
    return AppManager(store, supervisor, InstallerRegistry([installer]), default_cwd="/srv/apps")
