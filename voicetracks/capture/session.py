"""
CaptureSession: streams one user's raw PCM into an encoder while recording the
wall-clock boundaries of the fragment.

- start(): stamp start_ms, spawn the encoder, append an open fragment, launch the copy task.
- Copy task: read CHUNK_BYTES from the source, write to encoder stdin, until the source
  returns b"" or the cancel signal fires. Each read is raced against the cancel signal,
  so a source that stays silent forever does not block stop().
- stop(): set cancel, close the source, close the fragment, wait for the encoder to exit.
  Idempotent: concurrent or repeated calls share one shutdown and one report.
- An I/O error that is not caused by cancellation ends this session only; it is logged with
  the encoder exit status and its last output lines and returned in the report.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Callable

from voicetracks.audio.pcm import pcm_duration_ms, rms_int16
from voicetracks.capture.encoder import EncoderProcess
from voicetracks.capture.fragment import FragmentRecord, unix_ms
from voicetracks.capture.source import AudioSource, close_source
from voicetracks.config import Settings, get_settings
from voicetracks.errors import CaptureIOFailure
from voicetracks.paths import fragment_path

logger = logging.getLogger(__name__)

EncoderFactory = Callable[[str], EncoderProcess]


@dataclass
class CaptureReport:
    """Outcome of one capture session, returned by stop(). Informational for the caller."""

    user: str
    start_ms: int
    end_ms: int | None
    output_path: str
    bytes_written: int = 0
    audio_ms: int = 0  # PCM actually captured; falls short of end_ms - start_ms when the source went quiet
    returncode: int | None = None
    error: str | None = None
    diagnostics: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None


class CaptureSession:
    """
    One user's active recording. Touched only by its own tasks and by the single stopper,
    so it holds no lock. fragments is the registry's per-user list; this session appends
    one fragment to it and closes that fragment on stop.
    """

    def __init__(
        self,
        user: str,
        source: AudioSource,
        fragments: list[FragmentRecord],
        settings: Settings | None = None,
        clock: Callable[[], int] = unix_ms,
        encoder_factory: EncoderFactory | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.user = user
        self._source = source
        self._fragments = fragments
        self._clock = clock
        self._encoder_factory = encoder_factory or (lambda path: EncoderProcess(path, self._settings))
        self._cancel = asyncio.Event()
        self._encoder: EncoderProcess | None = None
        self._fragment: FragmentRecord | None = None
        self._copy_task: asyncio.Task | None = None
        self._stop_task: asyncio.Task | None = None
        self._failure: CaptureIOFailure | None = None
        self._quiet_chunks = 0
        self.state = "idle"  # idle, recording, stopping, stopped, failed

    @property
    def fragment(self) -> FragmentRecord | None:
        return self._fragment

    @property
    def encoder(self) -> EncoderProcess | None:
        return self._encoder

    @property
    def failure(self) -> CaptureIOFailure | None:
        return self._failure

    @property
    def stopping(self) -> bool:
        return self._stop_task is not None

    async def start(self) -> None:
        """Spawn the encoder and start copying. Raises EncoderSpawnFailed; nothing is recorded then."""
        if self.state != "idle":
            raise RuntimeError(f"Capture for {self.user} already started (state {self.state})")
        start_ms = self._clock()
        encoder = self._encoder_factory(fragment_path(self._settings, self.user, start_ms))
        await encoder.spawn()
        self._encoder = encoder

        if self._fragments:
            previous = self._fragments[-1]
            if previous.end_ms is not None and previous.end_ms > start_ms:
                logger.warning(
                    "Capture %s: fragment %s starts before previous end %s (clock skew)",
                    self.user,
                    start_ms,
                    previous.end_ms,
                )
        self._fragment = FragmentRecord(start_ms=start_ms, owner=self.user)
        self._fragments.append(self._fragment)
        self.state = "recording"
        self._copy_task = asyncio.create_task(self._copy_loop(), name=f"capture-{self.user}")
        logger.info("Capture started for %s at %s", self.user, start_ms)

    async def _read(self, cancel_waiter: asyncio.Future) -> bytes | None:
        """One source read, raced against cancellation. None means cancelled."""
        read_task = asyncio.ensure_future(self._source.read(self._settings.CHUNK_BYTES))
        await asyncio.wait({read_task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        if read_task.done():
            return read_task.result()
        read_task.cancel()
        with suppress(asyncio.CancelledError):
            await read_task
        return None

    async def _copy_loop(self) -> None:
        if self._encoder is None:
            raise RuntimeError(f"Capture for {self.user} has no encoder")
        encoder = self._encoder
        cancel_waiter = asyncio.ensure_future(self._cancel.wait())
        try:
            while not self._cancel.is_set():
                data = await self._read(cancel_waiter)
                if data is None:
                    break
                if not data:
                    logger.info("Capture %s: source reached end of stream", self.user)
                    break
                await encoder.write(data)
                self._note_level(data)
        except Exception as e:
            if self._cancel.is_set():
                logger.debug("Capture %s: copy loop ended during cancel: %s", self.user, e)
            else:
                self._failure = CaptureIOFailure(
                    f"Capture I/O failed for {self.user}: {e!r}",
                    {"user": self.user, "output_path": encoder.output_path},
                )
        finally:
            cancel_waiter.cancel()
            returncode = await encoder.shutdown()
            if self._failure is not None:
                self.state = "failed"
                self._failure.details["returncode"] = returncode
                self._failure.details["diagnostics"] = encoder.diagnostics()
                logger.error(
                    "%s (encoder exit %s, %d bytes written)\n%s",
                    self._failure.message,
                    returncode,
                    encoder.bytes_written,
                    "\n".join(encoder.diagnostics()) or "(no encoder output)",
                )

    def _note_level(self, data: bytes) -> None:
        """Warn once per run of quiet chunks; helps spot a muted or disconnected source."""
        if rms_int16(data) < self._settings.QUIET_RMS_THRESHOLD:
            self._quiet_chunks += 1
            if self._quiet_chunks == self._settings.QUIET_CHUNKS_WARN:
                logger.warning(
                    "Capture %s: %d consecutive chunks with RMS < %s",
                    self.user,
                    self._quiet_chunks,
                    self._settings.QUIET_RMS_THRESHOLD,
                )
        else:
            self._quiet_chunks = 0

    def begin_stop(self) -> asyncio.Task:
        """Start the shutdown once. Later calls return the same task, which outlives cancelled waiters."""
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self._stop(), name=f"stop-{self.user}")
        return self._stop_task

    async def stop(self) -> CaptureReport:
        """Stop capturing and wait for the encoder to exit. Repeated calls await the same shutdown."""
        return await asyncio.shield(self.begin_stop())

    async def _stop(self) -> CaptureReport:
        if self._encoder is None or self._fragment is None:
            raise RuntimeError(f"Capture for {self.user} was never started")
        if self.state == "recording":
            self.state = "stopping"
        logger.info("Stopping capture for %s", self.user)
        self._cancel.set()
        await close_source(self._source)
        self._fragment.close(self._clock())

        # The copy task releases the encoder on every exit path; shutdown() is a no-op then
        # and covers a copy task that never reached its finally block.
        if self._copy_task is not None:
            with suppress(asyncio.CancelledError):
                await self._copy_task
        returncode = await self._encoder.shutdown()

        error = self._failure.message if self._failure else None
        if error is None and returncode not in (0, None):
            error = f"Encoder for {self.user} exited with {returncode}"
            logger.warning("%s\n%s", error, "\n".join(self._encoder.diagnostics()) or "(no encoder output)")
        self.state = "stopped" if error is None else "failed"
        audio_ms = int(
            pcm_duration_ms(
                self._encoder.bytes_written,
                self._settings.SAMPLE_RATE,
                self._settings.CHANNELS,
                self._settings.SAMPLE_WIDTH,
            )
        )
        logger.info(
            "Stopped capture for %s: %s-%s ms, %d ms of audio",
            self.user,
            self._fragment.start_ms,
            self._fragment.end_ms,
            audio_ms,
        )
        return CaptureReport(
            user=self.user,
            start_ms=self._fragment.start_ms,
            end_ms=self._fragment.end_ms,
            output_path=self._encoder.output_path,
            bytes_written=self._encoder.bytes_written,
            audio_ms=audio_ms,
            returncode=returncode,
            error=error,
            diagnostics=self._encoder.diagnostics() if error else [],
        )
