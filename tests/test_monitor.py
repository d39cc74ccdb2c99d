"""Tests for host telemetry."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from tpanel.commands import CommandResult, CommandTimeout
from tpanel.monitor import UNAVAILABLE, SystemMonitor, parse_ps_output


PS_OUTPUT = """\
    PID %CPU %MEM COMMAND
      1  0.0  0.1 init
    120 12.5  3.2 node
    121  1.5  0.8 sshd
    400 40.0  9.9 chrome renderer
    abc  1.0  1.0 garbage
"""

ROUTE = """\
Iface\tDestination\tGateway \tFlags\tRefCnt\tUse\tMetric\tMask\t\tMTU\tWindow\tIRTT
wlan0\t0000A8C0\t00000000\t0001\t0\t0\t0\t00FFFFFF\t0\t0\t0
wlan0\t00000000\t0100A8C0\t0003\t0\t0\t0\t00000000\t0\t0\t0
"""


@pytest.fixture
def proc_root(tmp_path):
    """A fake /proc with the files the monitor reads."""
    root = tmp_path / "proc"
    (root / "net").mkdir(parents=True)
    (root / "uptime").write_text("3600.55 7000.00\n")
    (root / "loadavg").write_text("0.504 1.25 2.00 1/234 5678\n")
    (root / "meminfo").write_text(
        "MemTotal:        2048000 kB\n"
        "MemFree:          100000 kB\n"
        "MemAvailable:     512000 kB\n"
    )
    (root / "net" / "route").write_text(ROUTE)
    return root


@pytest.fixture
def monitor(proc_root):
    return SystemMonitor(proc_root=proc_root, public_ip_url="https://ip.example.test")


def ps_result(stdout=PS_OUTPUT, returncode=0):
    return CommandResult(args=["ps"], returncode=returncode, stdout=stdout, stderr="")


class TestSystemStats:
    """Tests for get_system_stats."""

    @pytest.mark.asyncio
    async def test_reads_proc_files(self, monitor):
        stats = await monitor.get_system_stats()

        assert stats["uptime"] == 3600.55
        assert stats["load"] == [0.5, 1.25, 2.0]
        assert stats["memory"] == {"total": 2000.0, "free": 500.0, "used": 75.0}
        assert stats["cpus"] >= 1

    @pytest.mark.asyncio
    async def test_memfree_fallback(self, monitor, proc_root):
        (proc_root / "meminfo").write_text("MemTotal: 1024 kB\nMemFree: 256 kB\n")

        memory = (await monitor.get_system_stats())["memory"]

        assert memory["used"] == 75.0

    @pytest.mark.asyncio
    async def test_missing_files_degrade(self, tmp_path):
        monitor = SystemMonitor(proc_root=tmp_path / "missing")

        stats = await monitor.get_system_stats()

        assert stats["uptime"] == 0.0
        assert stats["load"] == [0.0, 0.0, 0.0]
        assert stats["memory"] == {"total": 0.0, "free": 0.0, "used": 0.0}

    @pytest.mark.asyncio
    async def test_host_stats_shape(self):
        """Real host: three load values and used memory within 0-100."""
        stats = await SystemMonitor().get_system_stats()

        assert len(stats["load"]) == 3
        assert 0 <= stats["memory"]["used"] <= 100
        assert stats["uptime"] >= 0


class TestNetworkInfo:
    """Tests for get_network_info."""

    @pytest.mark.asyncio
    async def test_default_route(self, monitor):
        with patch.object(SystemMonitor, "_public_ip", AsyncMock(return_value="203.0.113.7")):
            with patch.object(SystemMonitor, "_private_ip", MagicMock(return_value="192.168.0.23")):
                info = await monitor.get_network_info()

        assert info == {
            "private_ip": "192.168.0.23",
            "public_ip": "203.0.113.7",
            "gateway": "192.168.0.1",
            "iface_name": "wlan0",
        }

    @pytest.mark.asyncio
    async def test_no_route_table(self, tmp_path):
        monitor = SystemMonitor(proc_root=tmp_path)

        with patch.object(SystemMonitor, "_public_ip", AsyncMock(return_value=UNAVAILABLE)):
            info = await monitor.get_network_info()

        assert info["gateway"] == UNAVAILABLE
        assert info["iface_name"] == UNAVAILABLE
        assert info["public_ip"] == UNAVAILABLE
        assert set(info) == {"private_ip", "public_ip", "gateway", "iface_name"}

    @pytest.mark.asyncio
    async def test_public_ip(self, monitor):
        response = httpx.Response(
            200, text="203.0.113.7\n", request=httpx.Request("GET", "https://ip.example.test")
        )

        with patch("httpx.AsyncClient.get", AsyncMock(return_value=response)) as get:
            assert await monitor._public_ip() == "203.0.113.7"

        get.assert_awaited_once_with("https://ip.example.test")

    @pytest.mark.asyncio
    async def test_public_ip_error(self, monitor):
        with patch("httpx.AsyncClient.get", AsyncMock(side_effect=httpx.ConnectError("offline"))):
            assert await monitor._public_ip() == UNAVAILABLE

    @pytest.mark.asyncio
    async def test_public_ip_invalid_url(self, monitor):
        with patch("httpx.AsyncClient.get", AsyncMock(side_effect=httpx.InvalidURL("Invalid URL"))):
            assert await monitor._public_ip() == UNAVAILABLE

    @pytest.mark.asyncio
    async def test_public_ip_bad_status(self, monitor):
        response = httpx.Response(
            503, text="busy", request=httpx.Request("GET", "https://ip.example.test")
        )

        with patch("httpx.AsyncClient.get", AsyncMock(return_value=response)):
            assert await monitor._public_ip() == UNAVAILABLE

    def test_private_ip_loopback_unavailable(self, monitor):
        sock = MagicMock()
        sock.__enter__.return_value.getsockname.return_value = ("127.0.0.1", 5000)

        with patch("socket.socket", return_value=sock):
            assert monitor._private_ip("192.168.0.1") == UNAVAILABLE

    def test_private_ip_from_route(self, monitor):
        sock = MagicMock()
        sock.__enter__.return_value.getsockname.return_value = ("192.168.0.23", 5000)

        with patch("socket.socket", return_value=sock):
            assert monitor._private_ip("192.168.0.1") == "192.168.0.23"

        sock.__enter__.return_value.connect.assert_called_once_with(("192.168.0.1", 80))


class TestProcessList:
    """Tests for ps parsing and paging."""

    def test_parse_ps_output(self):
        processes = parse_ps_output(PS_OUTPUT)

        assert len(processes) == 4
        assert processes[0] == {"pid": 1, "cpu": 0.0, "mem": 0.1, "command": "init"}
        assert processes[3]["command"] == "chrome renderer"

    def test_parse_empty(self):
        assert parse_ps_output("") == []
        assert parse_ps_output("PID %CPU %MEM COMMAND\n") == []

    @pytest.mark.asyncio
    async def test_sorted_by_cpu(self, monitor):
        with patch("tpanel.monitor.system.run_command", AsyncMock(return_value=ps_result())) as run:
            processes = await monitor.get_process_list()

        assert [p["pid"] for p in processes] == [400, 120, 121, 1]
        assert run.await_args.args[0] == ["ps", "-eo", "pid,pcpu,pmem,comm"]

    @pytest.mark.asyncio
    async def test_limit_and_offset(self, monitor):
        with patch("tpanel.monitor.system.run_command", AsyncMock(return_value=ps_result())):
            first = await monitor.get_process_list(limit=2, offset=0)
            second = await monitor.get_process_list(limit=2, offset=2)
            beyond = await monitor.get_process_list(limit=2, offset=10)

        assert [p["pid"] for p in first] == [400, 120]
        assert [p["pid"] for p in second] == [121, 1]
        assert beyond == []

    @pytest.mark.asyncio
    async def test_ps_failure_returns_empty(self, monitor):
        with patch("tpanel.monitor.system.run_command", AsyncMock(return_value=ps_result("", 1))):
            assert await monitor.get_process_list() == []

        with patch("tpanel.monitor.system.run_command", AsyncMock(side_effect=FileNotFoundError())):
            assert await monitor.get_process_list() == []

        with patch("tpanel.monitor.system.run_command", AsyncMock(side_effect=CommandTimeout("slow"))):
            assert await monitor.get_process_list() == []
