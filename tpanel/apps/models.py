"""Records for catalog apps, installed apps and supervised processes."""

from dataclasses import dataclass, field
from typing import Any

from ..errors import ValidationError


@dataclass(frozen=True)
class InstallSpec:
    """How to install an app: installer type plus package identifier."""

    type: str  # "npm"
    package: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "package": self.package}


@dataclass(frozen=True)
class RegistryEntry:
    """An installable app from the catalog. Never mutated by tpanel."""

    id: str
    name: str
    description: str
    category: str
    install: InstallSpec
    config: dict[str, Any] = field(default_factory=dict)  # script, args, env, cwd

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegistryEntry":
        """Build an entry from its stored JSON form.

        Raises:
            ValidationError: If the id or install descriptor is missing.
        """
        if not isinstance(data, dict):
            raise ValidationError("Registry entry must be an object")

        app_id = data.get("id")
        if not app_id or not isinstance(app_id, str):
            raise ValidationError("Registry entry needs a string 'id'")

        install = data.get("install") or {}
        if not isinstance(install, dict):
            raise ValidationError(f"Registry entry '{app_id}' has a non-object install")
        if not install.get("type") or not install.get("package"):
            raise ValidationError(
                f"Registry entry '{app_id}' needs install.type and install.package"
            )

        config = data.get("config") or {}
        if not isinstance(config, dict):
            raise ValidationError(f"Registry entry '{app_id}' has a non-object config")

        return cls(
            id=app_id,
            name=data.get("name", app_id),
            description=data.get("description", ""),
            category=data.get("category", ""),
            install=InstallSpec(type=install["type"], package=install["package"]),
            config=dict(config),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "install": self.install.to_dict(),
            "config": self.config,
        }


@dataclass
class InstalledApp:
    """An app that has been installed and recorded locally.

    Display fields are a snapshot of the registry entry at install time.
    ``status`` is for display only; the supervisor owns the run state.
    """

    id: str
    name: str
    description: str
    category: str
    config: dict[str, Any]
    status: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstalledApp":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            category=data.get("category", ""),
            config=data.get("config") or {},
            status=data.get("status"),
        )

    def to_dict(self) -> dict[str, Any]:
        record = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "config": self.config,
        }
        if self.status is not None:
            record["status"] = self.status
        return record


@dataclass
class ProcessSpec:
    """What the supervisor needs to launch a named process."""

    name: str
    script: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: str = "."
