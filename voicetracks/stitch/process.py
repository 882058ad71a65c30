"""Run a one-shot ffmpeg job (silence synthesis, concat) and collect its exit status."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    command: list[str]
    returncode: int
    stderr_tail: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_process(command: list[str], tail_lines: int = 50) -> ProcessResult:
    """
    Run command to completion. stdin is closed; stdout and stderr are read together by
    communicate() so a chatty ffmpeg cannot block on a full pipe. Raises OSError if the
    binary cannot be started.
    """
    logger.debug("Running: %s", " ".join(command))
    proc = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    text = stderr.decode("utf-8", errors="replace").replace("\r", "\n")
    lines = [line for line in text.split("\n") if line.strip()]
    return ProcessResult(command=command, returncode=proc.returncode, stderr_tail=lines[-tail_lines:])
