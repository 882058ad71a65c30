"""
EncoderProcess: one external ffmpeg per active capture.

- Reads raw PCM (s16le, 48kHz, stereo) on stdin and writes the fragment file.
- stdout and stderr are drained for the whole life of the process. ffmpeg blocks once a
  pipe buffer fills, and that would stall the copy loop writing to its stdin.
- Shutdown order: flush stdin, close stdin, await exit. Closing stdin is what makes the
  encoder finish the file and exit.
"""
from __future__ import annotations

import asyncio
import logging
import os
from collections import deque

from voicetracks.config import Settings, get_settings
from voicetracks.errors import EncoderSpawnFailed
from voicetracks.ffmpeg_io import encoder_command

logger = logging.getLogger(__name__)

_DRAIN_READ_BYTES = 4096


class EncoderProcess:
    """
    Wraps the subprocess for one fragment. spawn() once, write() many, shutdown() on every path.
    command overrides the ffmpeg command line (tests use a python stand-in).
    """

    def __init__(
        self,
        output_path: str,
        settings: Settings | None = None,
        command: list[str] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._output_path = output_path
        self._command = command
        self._process: asyncio.subprocess.Process | None = None
        self._drain_tasks: list[asyncio.Task] = []
        self._diagnostics: deque[str] = deque(maxlen=max(1, self._settings.DIAGNOSTIC_TAIL_LINES))
        self._input_closed = False
        self._released = False
        self.bytes_written = 0

    @property
    def output_path(self) -> str:
        return self._output_path

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def diagnostics(self) -> list[str]:
        """Last lines of encoder stdout/stderr, oldest first."""
        return list(self._diagnostics)

    def build_command(self) -> list[str]:
        if self._command is not None:
            return list(self._command)
        return encoder_command(self._settings, self._output_path)

    async def spawn(self) -> None:
        cmd = self.build_command()
        logger.debug("Encoder command: %s", " ".join(cmd))
        try:
            os.makedirs(os.path.dirname(self._output_path) or ".", exist_ok=True)
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncoderSpawnFailed(
                f"Could not start encoder for {self._output_path}: {e}",
                {"command": cmd, "output_path": self._output_path},
            ) from e
        self._drain_tasks = [
            asyncio.create_task(self._drain(self._process.stdout, "stdout")),
            asyncio.create_task(self._drain(self._process.stderr, "stderr")),
        ]
        logger.info("Encoder started (pid %s) -> %s", self._process.pid, self._output_path)

    async def _drain(self, stream: asyncio.StreamReader | None, name: str) -> None:
        """Read a pipe until EOF, keeping the last lines. ffmpeg ends progress lines with \\r."""
        if stream is None:
            return
        pending = ""
        while True:
            data = await stream.read(_DRAIN_READ_BYTES)
            if not data:
                break
            pending += data.decode("utf-8", errors="replace")
            lines = pending.replace("\r", "\n").split("\n")
            pending = lines.pop()
            for line in lines:
                if line.strip():
                    self._diagnostics.append(f"[{name}] {line.rstrip()}")
        if pending.strip():
            self._diagnostics.append(f"[{name}] {pending.rstrip()}")

    async def write(self, data: bytes) -> None:
        """Write to encoder stdin. Raises OSError (BrokenPipeError, ConnectionResetError) if it died."""
        if self._process is None or self._process.stdin is None or self._input_closed:
            raise BrokenPipeError(f"Encoder input for {self._output_path} is not open")
        self._process.stdin.write(data)
        await self._process.stdin.drain()
        self.bytes_written += len(data)

    async def close_input(self) -> None:
        """Flush and close stdin. Safe to call more than once and after the process died."""
        if self._input_closed or self._process is None or self._process.stdin is None:
            self._input_closed = True
            return
        self._input_closed = True
        stdin = self._process.stdin
        try:
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug("Encoder stdin already gone for %s: %s", self._output_path, e)
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug("Encoder stdin close failed for %s: %s", self._output_path, e)

    async def wait(self) -> int | None:
        """Await process exit, then the drain tasks. No timeout: exit follows closing stdin."""
        if self._process is None:
            return None
        returncode = await self._process.wait()
        if self._drain_tasks:
            await asyncio.gather(*self._drain_tasks)
        return returncode

    async def shutdown(self) -> int | None:
        """Release the encoder: close input, then await exit. Returns exit code (None if never spawned)."""
        if self._released:
            return self.returncode
        await self.close_input()
        returncode = await self.wait()
        self._released = True
        logger.info("Encoder exited with %s -> %s", returncode, self._output_path)
        return returncode
