import asyncio
import logging
import subprocess

import discord

from core.errors import PlaybackError

FFMPEG_BEFORE_OPTIONS = "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"
FFMPEG_OPTIONS = "-vn"

CHUNK_SIZE = 8192


class ProcessStream:
    """Audio bytes produced by an external extractor writing to stdout.

    Opening spawns the process and waits for the first chunk: that chunk is the
    proof the extraction worked. Afterwards `read()` is the playback stream
    itself, consumed by ffmpeg from the audio thread. Single use.
    """

    def __init__(self, args: list[str], *, label: str = ""):
        self.args = list(args)
        self.label = label or " ".join(args[-1:])
        self._proc: subprocess.Popen | None = None
        self._prefix = b""
        self._opened = False
        self._closed = False

    @property
    def consumed(self) -> bool:
        return self._opened

    async def open(self, timeout: float) -> "ProcessStream":
        if self._opened:
            raise PlaybackError(f"stream for {self.label} was already used")
        self._opened = True
        try:
            await asyncio.wait_for(asyncio.to_thread(self._spawn_and_prime), timeout)
        except asyncio.TimeoutError:
            self.close()
            raise PlaybackError(f"no audio from extractor within {timeout}s for {self.label}")
        except asyncio.CancelledError:
            self.close()
            raise
        except PlaybackError:
            self.close()
            raise
        return self

    def _spawn_and_prime(self):
        try:
            self._proc = subprocess.Popen(
                self.args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
            )
        except OSError as e:
            raise PlaybackError(f"could not start extractor: {e}") from e
        if self._closed:
            # closed while Popen was starting; close() had no process to kill
            self._kill(self._proc)
            raise PlaybackError(f"stream for {self.label} was closed before the extractor started")

        first = self._proc.stdout.read(CHUNK_SIZE)
        if not first:
            code = self._proc.wait()
            stderr = self._proc.stderr.read().decode(errors="replace").strip()
            logging.error(f"[audio] extractor exited with {code} before any audio: {stderr[-500:]}")
            raise PlaybackError(f"extractor exited with code {code} before producing audio")
        self._prefix = first
        logging.info(f"[audio] first chunk received for {self.label}")

    def read(self, size: int = CHUNK_SIZE) -> bytes:
        if self._prefix:
            data, self._prefix = self._prefix[:size], self._prefix[size:]
            return data
        if self._proc is None or self._closed:
            return b""
        return self._proc.stdout.read(size)

    def close(self):
        if self._closed:
            return
        self._closed = True
        if self._proc is not None:
            self._kill(self._proc)

    def _kill(self, proc: subprocess.Popen):
        if proc.poll() is not None:
            return
        logging.info(f"[audio] killing extractor for {self.label}")
        proc.kill()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logging.warning(f"[audio] extractor for {self.label} did not exit after kill")


async def build_source(playable):
    """Turn a locator URL or an opened ProcessStream into a discord audio source."""
    if isinstance(playable, ProcessStream):
        return discord.FFmpegOpusAudio(playable, pipe=True, options=FFMPEG_OPTIONS)
    return await discord.FFmpegOpusAudio.from_probe(
        playable,
        before_options=FFMPEG_BEFORE_OPTIONS,
        options=FFMPEG_OPTIONS,
    )
