"""
Local shell executor

Runs each command's action through the local shell. The working directory
and extra environment come from the run's target description
(``target["cwd"]``, ``target["env"]``).
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

from ..core.models import Command
from ..core.context import ExecutionContext
from .base import CommandExecutor

logger = logging.getLogger(__name__)

OUTPUT_LIMIT = 4000


class ShellCommandError(RuntimeError):
    def __init__(self, action: str, exit_code: Optional[int], stderr: str):
        self.action = action
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip() or "no error output"
        super().__init__(f"'{action}' exited with code {exit_code}: {detail}")


class ShellExecutor(CommandExecutor):
    """Executes command actions as local shell commands"""

    def __init__(
        self,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        executor_id: Optional[str] = None,
    ):
        super().__init__(executor_id=executor_id, name="Shell Executor")
        self.timeout = timeout
        self.cwd = cwd
        self.env = dict(env or {})

    async def run_command(self, command: Command, context: ExecutionContext) -> Any:
        cwd = context.target.get("cwd", self.cwd)
        env = os.environ.copy()
        env.update(self.env)
        env.update(context.target.get("env") or {})

        timeout = command.payload.get("timeout", self.timeout)

        logger.debug(f"Running shell command {command.command_id}: {command.action}")
        process = await asyncio.create_subprocess_shell(
            command.action,
            cwd=cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            raise TimeoutError(f"'{command.action}' timed out after {timeout}s")
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        stdout_text = stdout.decode(errors="replace")[-OUTPUT_LIMIT:]
        stderr_text = stderr.decode(errors="replace")[-OUTPUT_LIMIT:]

        if process.returncode != 0:
            raise ShellCommandError(command.action, process.returncode, stderr_text)

        return {
            "exit_code": process.returncode,
            "stdout": stdout_text,
            "stderr": stderr_text,
        }

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            process.kill()
            await process.wait()
