"""Generation capability boundary and shared subprocess plumbing."""

from __future__ import annotations

import asyncio
import os
import shutil
import time
from abc import ABC, abstractmethod
from typing import Optional

from ..core.exceptions import CapabilityError
from ..utils.logger import get_logger

logger = get_logger(__name__)

PROGRESS_INTERVAL_SECONDS = 10.0


class GenerationCapability(ABC):
    """Text-in, text-out generator.

    Implementations return raw text expected (not guaranteed) to contain a
    JSON object, and raise CapabilityError on process, network or auth
    failure. Cancelling the awaiting task must abort in-flight work.
    """

    name: str = "generator"

    def __init__(self, model: Optional[str] = None):
        self.model = model

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether this capability can be used on this machine."""
        pass

    @abstractmethod
    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Run one generation call and return the raw text."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass

    def describe(self) -> str:
        return f"{self.name} ({self.model})" if self.model else self.name


class CLICapability(GenerationCapability):
    """Base for capabilities that shell out to a local CLI."""

    binary: str = ""

    def __init__(
        self,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        progress_interval: float = PROGRESS_INTERVAL_SECONDS,
    ):
        """Initialize CLI capability.

        Args:
            model: Model name passed to the CLI.
            timeout: Optional call-level timeout in seconds.
            progress_interval: Seconds between "still generating" log lines.
        """
        super().__init__(model)
        self.timeout = timeout
        self.progress_interval = progress_interval

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    async def _report_progress(self, started: float) -> None:
        while True:
            await asyncio.sleep(self.progress_interval)
            elapsed = int(time.monotonic() - started)
            logger.info(f"Still generating... ({elapsed}s elapsed)")

    async def _run(self, args: list[str], stdin_text: str) -> str:
        """Run the CLI with a prompt on stdin.

        Args:
            args: Arguments after the binary name.
            stdin_text: Text written to the process's stdin.

        Returns:
            Decoded stdout.

        Raises:
            CapabilityError: on launch failure, non-zero exit, or timeout.
        """
        cmd = [self.binary, *args]
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=os.environ.copy(),
            )
        except OSError as e:
            raise CapabilityError(f"failed to start {self.binary}: {e}", capability=self.name) from e

        started = time.monotonic()
        ticker = asyncio.create_task(self._report_progress(started))
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin_text.encode("utf-8")),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            self._kill(process)
            raise CapabilityError(
                f"{self.binary} timed out after {self.timeout}s",
                capability=self.name,
            ) from e
        except asyncio.CancelledError:
            self._kill(process)
            raise
        finally:
            ticker.cancel()

        stdout_str = stdout.decode("utf-8", errors="replace").strip()
        stderr_str = stderr.decode("utf-8", errors="replace").strip()

        if process.returncode != 0:
            logger.warning(f"{self.binary} exited with {process.returncode}: {stderr_str[:500]}")
            raise CapabilityError(
                f"{self.binary} failed (exit {process.returncode}): {stderr_str or stdout_str[:500]}",
                capability=self.name,
                details={"returncode": process.returncode},
            )

        logger.debug(f"{self.binary} finished in {time.monotonic() - started:.1f}s")
        return stdout_str

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
