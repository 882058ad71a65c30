import sys
from pathlib import Path

import pytest

from conftest import FakeRunner
from voicetracks.capture.fragment import FragmentRecord
from voicetracks.config import Settings
from voicetracks.stitch.process import run_process
from voicetracks.stitch.stitcher import Stitcher


def scenario():
    return {
        "X": [FragmentRecord(0, "X", 1000), FragmentRecord(3000, "X", 4000)],
        "Y": [FragmentRecord(500, "Y", 1500)],
        "W": [],
    }


@pytest.mark.asyncio
async def test_stitch_writes_manifest_and_concats_per_user(settings):
    runner = FakeRunner()
    results = {r.user: r for r in await Stitcher(settings, runner=runner).stitch_all(scenario())}

    assert set(results) == {"X", "Y"}
    manifest = Path(settings.FRAGMENTS_DIR) / "X-instructions.txt"
    assert manifest.read_text().splitlines() == [
        "file 'X-0.wav'",
        "file 'silence-2000.wav'",
        "file 'X-3000.wav'",
    ]
    assert results["X"].duration_ms == 4000
    assert results["Y"].duration_ms == 1500
    assert Path(results["X"].output_path) == Path(settings.RECORDINGS_DIR) / "X-0.wav"
    assert len(runner.concat_commands()) == 2


@pytest.mark.asyncio
async def test_users_without_fragments_produce_no_files(settings):
    runner = FakeRunner()
    results = await Stitcher(settings, runner=runner).stitch_all({"W": [], "V": []})

    assert results == []
    assert runner.commands == []
    assert not Path(settings.RECORDINGS_DIR).exists() or not any(Path(settings.RECORDINGS_DIR).iterdir())


@pytest.mark.asyncio
async def test_shared_silence_duration_is_synthesized_once(settings):
    runner = FakeRunner()
    fragments = {
        "A": [FragmentRecord(0, "A", 100)],
        "B": [FragmentRecord(100, "B", 200)],
        "C": [FragmentRecord(100, "C", 300)],
    }

    await Stitcher(settings, runner=runner).stitch_all(fragments)

    silences = runner.silence_commands()
    assert len(silences) == 1
    assert silences[0][-1].endswith("silence-100.wav")


@pytest.mark.asyncio
async def test_concat_failure_is_isolated(settings):
    runner = FakeRunner(fail_when=lambda cmd: "concat" in cmd and cmd[-1].endswith("X-0.wav"))
    results = {r.user: r for r in await Stitcher(settings, runner=runner).stitch_all(scenario())}

    assert not results["X"].success
    assert results["X"].output_path is None
    assert "exit 1" in results["X"].error
    assert results["Y"].success
    assert Path(results["Y"].output_path).exists()


@pytest.mark.asyncio
async def test_silence_failure_fails_only_users_needing_it(settings):
    runner = FakeRunner(fail_when=lambda cmd: "lavfi" in cmd and cmd[-1].endswith("silence-2000.wav"))
    results = {r.user: r for r in await Stitcher(settings, runner=runner).stitch_all(scenario())}

    assert not results["X"].success
    assert "Silence synthesis (2000 ms)" in results["X"].error
    assert results["Y"].success


@pytest.mark.asyncio
async def test_missing_ffmpeg_is_a_stitch_failure(settings):
    async def runner(command):
        raise FileNotFoundError(command[0])

    results = await Stitcher(settings, runner=runner).stitch_all({"Y": [FragmentRecord(0, "Y", 10)]})

    assert not results[0].success
    assert results[0].output_path is None


@pytest.mark.asyncio
async def test_unexpected_error_fails_only_that_user(settings):
    fake = FakeRunner()

    async def runner(command):
        if "concat" in command and command[-1].endswith("X-0.wav"):
            raise RuntimeError("runner blew up")
        return await fake(command)

    results = {r.user: r for r in await Stitcher(settings, runner=runner).stitch_all(scenario())}

    assert not results["X"].success
    assert results["X"].output_path is None
    assert "runner blew up" in results["X"].error
    assert results["Y"].success
    assert Path(results["Y"].output_path).exists()


@pytest.mark.asyncio
async def test_sequential_stitching_gives_same_plan(settings):
    sequential = Settings(**{**settings.model_dump(), "STITCH_CONCURRENTLY": False})
    runner = FakeRunner()

    results = await Stitcher(sequential, runner=runner).stitch_all(scenario())

    assert [r.user for r in results] == ["X", "Y"]
    assert results[0].clips == ["X-0.wav", "silence-2000.wav", "X-3000.wav"]


@pytest.mark.asyncio
async def test_common_end_padding_setting(settings):
    padded = Settings(**{**settings.model_dump(), "PAD_TRACKS_TO_COMMON_END": True})

    results = {r.user: r for r in await Stitcher(padded, runner=FakeRunner()).stitch_all(scenario())}

    assert results["Y"].clips == ["silence-500.wav", "Y-500.wav", "silence-2500.wav"]
    assert results["X"].duration_ms == results["Y"].duration_ms == 4000


@pytest.mark.asyncio
async def test_run_process_collects_exit_and_stderr():
    result = await run_process(
        [sys.executable, "-c", "import sys; sys.stderr.write('one\\rtwo\\n'); sys.exit(2)"]
    )

    assert result.returncode == 2
    assert not result.ok
    assert result.stderr_tail == ["one", "two"]
