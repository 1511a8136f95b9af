"""Waveform derivation through the external ``audiowaveform`` tool.

The tool is run once per audio upload:

    audiowaveform -i <input> -o <input>.dat --pixels-per-second 1024

The caller awaits the process, which is bounded by a timeout; a stuck
process is killed and reported as a failure. A process whose caller is
cancelled is killed too, so it never writes output after the upload is gone.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List

from stagebox.errors import UpstreamError

logger = logging.getLogger(__name__)


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass


class WaveformError(UpstreamError):
    """The waveform tool could not be started, failed, or timed out."""

    default_message = "Waveform generation failed"


class WaveformGenerator:
    """Runs the waveform tool for one input file at a time."""

    def __init__(
        self,
        tool: str = "audiowaveform",
        pixels_per_second: int = 1024,
        timeout_seconds: float = 300.0,
    ) -> None:
        self.tool = tool
        self.pixels_per_second = pixels_per_second
        self.timeout_seconds = timeout_seconds

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        return [
            self.tool,
            "-i", str(input_path),
            "-o", str(output_path),
            "--pixels-per-second", str(self.pixels_per_second),
        ]

    async def generate(self, input_path: Path, output_path: Path) -> None:
        """Write waveform data for *input_path* to *output_path*.

        Raises:
            WaveformError: On start failure, non-zero exit or timeout.
        """
        cmd = self.build_command(input_path, output_path)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Could not start %s: %s", self.tool, exc)
            raise WaveformError(details=f"could not start {self.tool}: {exc}") from exc

        try:
            _, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("%s timed out after %ss on %s", self.tool, self.timeout_seconds, input_path.name)
            raise WaveformError(details=f"{self.tool} timed out after {self.timeout_seconds}s") from exc
        finally:
            # Timed out or cancelled: the tool must not outlive the request and write later.
            if proc.returncode is None:
                _kill(proc)
                await proc.wait()

        if proc.returncode != 0:
            stderr = stderr_b.decode(errors="replace").strip()
            logger.error(
                "%s failed (exit %s) on %s: %s",
                self.tool, proc.returncode, input_path.name, stderr[-500:],
            )
            raise WaveformError(details=f"{self.tool} exited with status {proc.returncode}")

        logger.info("Waveform written: %s", output_path.name)
