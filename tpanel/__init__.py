"""tpanel: a local dashboard for installing and supervising background apps."""

__version__ = "0.1.0"
