"""Run external commands (npm, pm2, ps) as bounded asyncio subprocesses."""

import asyncio
import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class CommandTimeout(Exception):
    """The command did not finish in time and was killed."""


@dataclass
class CommandResult:
    """Exit status and decoded output of a finished command."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def output_tail(self, lines: int = 5) -> str:
        """Last few lines of stderr, or stdout if stderr is empty."""
        text = self.stderr.strip() or self.stdout.strip()
        return "\n".join(text.splitlines()[-lines:])


async def run_command(
    args: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run a command to completion.

    Args:
        args: Program and arguments (no shell).
        cwd: Working directory.
        env: Extra environment variables, layered over ``os.environ``.
        timeout: Seconds before the process is killed.

    Returns:
        CommandResult with exit code and output.

    Raises:
        FileNotFoundError: If the program does not exist.
        CommandTimeout: If the timeout expired.
    """
    child_env = None
    if env:
        child_env = {**os.environ, **{k: str(v) for k, v in env.items()}}

    logger.debug(f"Running: {' '.join(args)} (cwd={cwd})")

    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        env=child_env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        raise CommandTimeout(f"'{args[0]}' timed out after {timeout}s") from None

    return CommandResult(
        args=list(args),
        returncode=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
