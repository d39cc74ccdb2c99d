"""Host telemetry from /proc, ps and a public-IP echo service."""

import logging
import os
import socket
import struct
from pathlib import Path
from typing import Any

import httpx

from ..commands import CommandTimeout, run_command

logger = logging.getLogger(__name__)

UNAVAILABLE = "N/A"


class SystemMonitor:
    """Stateless queries for host stats, network info and processes.

    Reads /proc files directly (no psutil dependency). Anything that cannot
    be read degrades to zeros or "N/A" rather than raising.
    """

    def __init__(
        self,
        proc_root: str | Path = "/proc",
        public_ip_url: str = "https://api.ipify.org",
        network_timeout: float = 5.0,
        ps_command: str = "ps",
    ):
        """Initialize the monitor.

        Args:
            proc_root: Where the proc filesystem is mounted.
            public_ip_url: Service answering with the caller's public IP.
            network_timeout: Seconds for the public-IP request and ps call.
            ps_command: Name or path of the ps executable.
        """
        self.proc_root = Path(proc_root)
        self.public_ip_url = public_ip_url
        self.network_timeout = network_timeout
        self.ps_command = ps_command

    # ==================== System stats ====================

    async def get_system_stats(self) -> dict[str, Any]:
        """Uptime, load averages, memory and CPU count.

        Returns:
            Dict with ``uptime`` (seconds), ``load`` (three floats),
            ``memory`` (``total``/``free`` in MB, ``used`` percent) and
            ``cpus``.
        """
        return {
            "uptime": self._read_uptime(),
            "load": self._read_load_avg(),
            "memory": self._read_memory(),
            "cpus": os.cpu_count() or 1,
        }

    def _read_uptime(self) -> float:
        try:
            with open(self.proc_root / "uptime") as f:
                return float(f.read().split()[0])
        except (FileNotFoundError, ValueError, IndexError, PermissionError):
            return 0.0

    def _read_load_avg(self) -> list[float]:
        """Read 1, 5 and 15-minute load averages from loadavg."""
        try:
            with open(self.proc_root / "loadavg") as f:
                parts = f.read().split()
            return [round(float(v), 2) for v in parts[:3]] if len(parts) >= 3 else [0.0, 0.0, 0.0]
        except (FileNotFoundError, ValueError, PermissionError):
            return [0.0, 0.0, 0.0]

    def _read_memory(self) -> dict[str, float]:
        """Parse meminfo into total and free MB plus used percentage."""
        meminfo = {}
        try:
            with open(self.proc_root / "meminfo") as f:
                for line in f:
                    parts = line.split()
                    if len(parts) >= 2:
                        meminfo[parts[0].rstrip(":")] = int(parts[1])
        except (FileNotFoundError, ValueError, PermissionError):
            pass

        total_kb = meminfo.get("MemTotal", 0)
        free_kb = meminfo.get("MemAvailable", meminfo.get("MemFree", 0))
        free_kb = min(free_kb, total_kb)

        used = (1 - free_kb / total_kb) * 100 if total_kb else 0.0

        return {
            "total": round(total_kb / 1024, 1),  # kB to MB
            "free": round(free_kb / 1024, 1),
            "used": round(min(max(used, 0.0), 100.0), 1),
        }

    # ==================== Network ====================

    async def get_network_info(self) -> dict[str, str]:
        """Private IP, public IP, default gateway and interface name.

        Each field is "N/A" when it cannot be determined.
        """
        iface_name, gateway = self._read_default_route()
        return {
            "private_ip": self._private_ip(gateway),
            "public_ip": await self._public_ip(),
            "gateway": gateway,
            "iface_name": iface_name,
        }

    def _read_default_route(self) -> tuple[str, str]:
        """Find the default route's interface and gateway in net/route."""
        try:
            with open(self.proc_root / "net" / "route") as f:
                next(f, None)  # header
                for line in f:
                    fields = line.split()
                    if len(fields) < 3 or fields[1] != "00000000":
                        continue
                    gateway = socket.inet_ntoa(struct.pack("<L", int(fields[2], 16)))
                    return fields[0], gateway
        except (FileNotFoundError, ValueError, PermissionError, struct.error):
            pass
        return UNAVAILABLE, UNAVAILABLE

    def _private_ip(self, gateway: str) -> str:
        """Local address the host would use to reach the gateway.

        Connecting a UDP socket sends no packets; it only picks a route.
        """
        target = gateway if gateway != UNAVAILABLE else "8.8.8.8"
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.connect((target, 80))
                address = s.getsockname()[0]
        except OSError:
            try:
                address = socket.gethostbyname(socket.gethostname())
            except OSError:
                return UNAVAILABLE

        if address.startswith("127.") or address == "0.0.0.0":
            return UNAVAILABLE
        return address

    async def _public_ip(self) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.network_timeout) as client:
                response = await client.get(self.public_ip_url)
                response.raise_for_status()
                return response.text.strip() or UNAVAILABLE
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Public IP fetch error: {e}")
            return UNAVAILABLE

    # ==================== Processes ====================

    async def get_process_list(self, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
        """Running processes ordered by CPU usage, highest first.

        Args:
            limit: Maximum number of processes to return.
            offset: Number of processes to skip.

        Returns:
            List of dicts with ``pid``, ``cpu``, ``mem`` and ``command``.
            Empty if ps cannot be run.
        """
        try:
            result = await run_command(
                [self.ps_command, "-eo", "pid,pcpu,pmem,comm"],
                timeout=self.network_timeout,
            )
        except (FileNotFoundError, CommandTimeout) as e:
            logger.error(f"Process fetch error: {e}")
            return []

        if not result.ok:
            logger.error(f"Process fetch error: {result.output_tail()}")
            return []

        processes = parse_ps_output(result.stdout)
        processes.sort(key=lambda p: p["cpu"], reverse=True)

        offset = max(offset, 0)
        return processes[offset:offset + max(limit, 0)]


def parse_ps_output(output: str) -> list[dict[str, Any]]:
    """Parse ``ps -eo pid,pcpu,pmem,comm`` output, skipping the header."""
    processes = []
    for line in output.strip().splitlines()[1:]:
        parts = line.split(None, 3)
        if len(parts) < 4:
            continue
        try:
            processes.append(
                {
                    "pid": int(parts[0]),
                    "cpu": float(parts[1]),
                    "mem": float(parts[2]),
                    "command": parts[3].strip(),
                }
            )
        except ValueError:
            continue
    return processes
