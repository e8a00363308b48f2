"""MP3 -> M4A (AAC) transcoding through the ffmpeg binary."""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import TranscodeError

logger = logging.getLogger(__name__)

FFMPEG_BINARY = "ffmpeg"
TEMP_FILE_MAX_AGE_SECONDS = 60 * 60
SWEEP_INTERVAL_SECONDS = 30 * 60
STDERR_TAIL_CHARS = 500


def ffmpeg_args(input_path: Path, output_path: Path) -> List[str]:
    return [
        "-i", str(input_path),
        "-c:a", "aac",
        "-b:a", "192k",
        "-ar", "44100",
        "-ac", "2",
        "-movflags", "+faststart",
        "-y",
        str(output_path),
    ]


class AudioTranscoder:
    """Runs ffmpeg on temp files under uploads/audio-temp."""

    def __init__(self, temp_dir: Path, binary: str = FFMPEG_BINARY):
        self.temp_dir = Path(temp_dir)
        self.binary = binary
        self._sweeper: Optional[asyncio.Task] = None

    def ensure_temp_dir(self) -> None:
        if not self.temp_dir.exists():
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created audio temp directory: {self.temp_dir}")

    async def _run(self, args: List[str]) -> Tuple[int, bytes, bytes]:
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TranscodeError("FFmpeg not found. Please install FFmpeg on the server.") from e

        stdout, stderr = await process.communicate()
        return process.returncode, stdout, stderr

    async def version(self) -> str:
        """
        Return the ffmpeg version string.

        Raises:
            TranscodeError: ffmpeg is missing or exits non-zero
        """
        code, stdout, _ = await self._run(["-version"])
        if code != 0:
            raise TranscodeError("FFmpeg check failed", code=code)
        match = re.search(r"ffmpeg version (\S+)", stdout.decode("utf-8", errors="replace"))
        return match.group(1) if match else "unknown"

    async def transcode_to_m4a(self, data: bytes, extension: str) -> Tuple[bytes, int]:
        """
        Transcode an audio payload to M4A.

        Args:
            data: Uploaded file contents
            extension: Original extension including the dot, e.g. ".mp3"

        Returns:
            (m4a bytes, transcode time in ms)
        """
        self.ensure_temp_dir()
        stem = f"{int(time.time() * 1000)}-{secrets.token_hex(8)}"
        input_path = self.temp_dir / f"{stem}-input{extension}"
        output_path = self.temp_dir / f"{stem}-output.m4a"

        try:
            input_path.write_bytes(data)
            logger.info(f"Running ffmpeg {' '.join(ffmpeg_args(input_path, output_path))}")
            started = time.monotonic()
            code, _, stderr = await self._run(ffmpeg_args(input_path, output_path))
            elapsed_ms = int((time.monotonic() - started) * 1000)

            if code != 0:
                tail = stderr.decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:]
                logger.error(f"ffmpeg exited with code {code}: {tail}")
                raise TranscodeError(f"FFmpeg exited with code {code}: {tail}", code=code)
            if not output_path.exists():
                raise TranscodeError("Transcoded file not found")

            output = output_path.read_bytes()
            logger.info(f"Transcoded {len(data)} -> {len(output)} bytes in {elapsed_ms}ms")
            return output, elapsed_ms
        finally:
            for path in (input_path, output_path):
                path.unlink(missing_ok=True)

    def cleanup_temp_files(self, max_age: float = TEMP_FILE_MAX_AGE_SECONDS) -> int:
        """Delete temp files older than `max_age` seconds. Returns how many were removed."""
        if not self.temp_dir.exists():
            return 0

        cutoff = time.time() - max_age
        deleted = 0
        for path in self.temp_dir.iterdir():
            if not path.is_file():
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
            except OSError as e:
                logger.error(f"Error deleting temp file {path.name}: {e}")

        if deleted:
            logger.info(f"Audio temp cleanup: deleted {deleted} files")
        return deleted

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            self.cleanup_temp_files()
            await asyncio.sleep(interval)

    def start_sweeper(self, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_forever(interval))

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
