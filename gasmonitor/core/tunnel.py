import asyncio
import logging
import shlex
from typing import Optional

from gasmonitor.core.errors import TransportError

logger = logging.getLogger(__name__)


class Tunnel:
    """Runs an external command that exposes the local port publicly."""

    def __init__(self, command: str):
        self.command = command
        self.process: Optional[asyncio.subprocess.Process] = None

    async def start(self) -> None:
        args = shlex.split(self.command)
        if not args:
            raise TransportError("Tunnel command is empty")
        try:
            self.process = await asyncio.create_subprocess_exec(*args)
        except OSError as e:
            raise TransportError(f"Failed to start tunnel '{args[0]}': {e}") from e
        logger.info(f"Tunnel started (pid {self.process.pid}): {self.command}")

    async def stop(self) -> None:
        if self.process is None or self.process.returncode is not None:
            return
        self.process.terminate()
        try:
            await asyncio.wait_for(self.process.wait(), timeout=5)
        except asyncio.TimeoutError:
            self.process.kill()
        logger.info("Tunnel stopped")
