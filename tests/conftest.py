import asyncio
import os
import sys
from pathlib import Path

import pytest

from voicetracks.capture.encoder import EncoderProcess
from voicetracks.config import Settings
from voicetracks.stitch.process import ProcessResult

# Writes everything it reads on stdin to argv[1]; announces itself on stderr like ffmpeg would.
STAND_IN_ENCODER = (
    "import pathlib, sys\n"
    "dest = pathlib.Path(sys.argv[1])\n"
    "sys.stderr.write('stand-in encoder ready\\n')\n"
    "sys.stderr.flush()\n"
    "with dest.open('wb') as out:\n"
    "    while True:\n"
    "        chunk = sys.stdin.buffer.read(65536)\n"
    "        if not chunk:\n"
    "            break\n"
    "        out.write(chunk)\n"
)

# Dies right away without reading stdin.
CRASHING_ENCODER = "import sys; sys.stderr.write('encoder crashed: bad codec\\n'); sys.exit(3)"


class FakeClock:
    """Millisecond clock driven by the test."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakeRunner:
    """Stands in for ffmpeg jobs: records commands, creates the output file, fails on request."""

    def __init__(self, fail_when=None) -> None:
        self.commands: list[list[str]] = []
        self._fail_when = fail_when or (lambda cmd: False)

    async def __call__(self, command: list[str]) -> ProcessResult:
        self.commands.append(command)
        await asyncio.sleep(0)
        if self._fail_when(command):
            return ProcessResult(command=command, returncode=1, stderr_tail=["Invalid data found"])
        Path(command[-1]).write_bytes(b"")
        return ProcessResult(command=command, returncode=0)

    def silence_commands(self) -> list[list[str]]:
        return [c for c in self.commands if "lavfi" in c]

    def concat_commands(self) -> list[list[str]]:
        return [c for c in self.commands if "concat" in c]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        RECORDINGS_DIR=str(tmp_path / "Recordings"),
        FRAGMENTS_DIR=str(tmp_path / "Recordings" / "Fragments"),
        QUIET_CHUNKS_WARN=3,
        LOG_FILE="",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def encoder_factory(settings: Settings):
    def factory(path: str) -> EncoderProcess:
        return EncoderProcess(path, settings, command=[sys.executable, "-c", STAND_IN_ENCODER, path])

    return factory


@pytest.fixture
def crashing_for():
    """Factory builder: users listed crash right after spawn; everyone else gets the stand-in."""

    def build(settings: Settings, *crashing_users: str):
        def factory(path: str) -> EncoderProcess:
            name = os.path.basename(path)
            if any(name.startswith(f"{u}-") for u in crashing_users):
                return EncoderProcess(path, settings, command=[sys.executable, "-c", CRASHING_ENCODER])
            return EncoderProcess(path, settings, command=[sys.executable, "-c", STAND_IN_ENCODER, path])

        return factory

    return build


async def wait_until(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
