"""Durable state for tpanel: the app registry and the installed-apps list."""

from .json_store import INSTALLED, REGISTRY, JSONStore

__all__ = ["JSONStore", "REGISTRY", "INSTALLED"]
