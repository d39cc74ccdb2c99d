"""Host telemetry: CPU load, memory, network and processes."""

from .system import UNAVAILABLE, SystemMonitor, parse_ps_output

__all__ = ["SystemMonitor", "UNAVAILABLE", "parse_ps_output"]
