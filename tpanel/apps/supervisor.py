"""Process supervisor adapters.

The supervisor owns the table of named long-running processes. tpanel never
tracks pids itself; it only asks the supervisor to start, stop, restart or
forget a process by name.
"""

import json
import logging
import re
from abc import ABC, abstractmethod

from ..commands import CommandResult, CommandTimeout, run_command
from ..errors import ProcessNotFound, SupervisorError
from .models import ProcessSpec

logger = logging.getLogger(__name__)

# pm2 wording for an unknown process name; "Script not found" is a launch failure
PROCESS_NOT_FOUND = re.compile(r"process or namespace .* not found", re.IGNORECASE)


class ProcessSupervisor(ABC):
    """Abstract control surface of an external process supervisor."""

    @abstractmethod
    async def start(self, spec: ProcessSpec | str) -> None:
        """Launch a new process from a spec, or start a known one by name.

        Raises:
            ProcessNotFound: If a bare name is unknown to the supervisor.
            SupervisorError: If the supervisor fails.
        """
        pass

    @abstractmethod
    async def stop(self, name: str) -> None:
        """Stop a process, keeping it registered."""
        pass

    @abstractmethod
    async def restart(self, name: str) -> None:
        """Restart a process."""
        pass

    @abstractmethod
    async def delete(self, name: str) -> None:
        """Stop a process and remove it from the supervisor's table."""
        pass

    @abstractmethod
    async def list_processes(self) -> dict[str, str]:
        """Map process name to its current status ("online", "stopped", ...)."""
        pass


class PM2Supervisor(ProcessSupervisor):
    """Drives PM2 through its command line, one invocation per operation."""

    def __init__(self, pm2_command: str = "pm2", timeout: float = 30.0):
        """Initialize the adapter.

        Args:
            pm2_command: Name or path of the pm2 executable.
            timeout: Seconds to wait for each pm2 call.
        """
        self.pm2_command = pm2_command
        self.timeout = timeout

    async def _pm2(
        self,
        *args: str,
        name: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        cmd = [self.pm2_command, *args]
        try:
            result = await run_command(cmd, cwd=cwd, env=env, timeout=self.timeout)
        except FileNotFoundError as e:
            raise SupervisorError(f"pm2 executable not found: {self.pm2_command}") from e
        except CommandTimeout as e:
            raise SupervisorError(f"pm2 {args[0]} '{name}' failed: {e}") from e

        if not result.ok:
            detail = result.output_tail()
            if PROCESS_NOT_FOUND.search(detail):
                raise ProcessNotFound(f"Process '{name}' not found in pm2")
            raise SupervisorError(f"pm2 {args[0]} '{name}' failed: {detail}")

        return result

    async def start(self, spec: ProcessSpec | str) -> None:
        if isinstance(spec, str):
            await self._pm2("start", spec, name=spec)
            logger.info(f"Started process '{spec}'")
            return

        args = [
            "start",
            spec.script,
            "--name",
            spec.name,
            "--cwd",
            spec.cwd,
        ]
        if spec.args:
            args.extend(["--", *spec.args])

        await self._pm2(*args, name=spec.name, cwd=spec.cwd, env=spec.env)
        logger.info(f"Launched process '{spec.name}': {spec.script} {' '.join(spec.args)}")

    async def stop(self, name: str) -> None:
        await self._pm2("stop", name, name=name)
        logger.info(f"Stopped process '{name}'")

    async def restart(self, name: str) -> None:
        await self._pm2("restart", name, name=name)
        logger.info(f"Restarted process '{name}'")

    async def delete(self, name: str) -> None:
        await self._pm2("delete", name, name=name)
        logger.info(f"Deleted process '{name}'")

    async def list_processes(self) -> dict[str, str]:
        result = await self._pm2("jlist", name="*")
        try:
            processes = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise SupervisorError(f"Unreadable pm2 jlist output: {e}") from e

        return {
            p.get("name"): (p.get("pm2_env") or {}).get("status", "unknown")
            for p in processes
            if p.get("name")
        }
