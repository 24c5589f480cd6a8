"""Library for issuing commands using asyncio and returning the result."""

import asyncio
from collections.abc import AsyncGenerator
from dataclasses import dataclass
import logging
import os
import shlex
import subprocess

from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 20
_SEM = asyncio.Semaphore(_CONCURRENCY)
_TIMEOUT = 60.0


# No public API
__all__: list[str] = []


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    env: dict[str, str] | None = None
    """Additional environment variables for the subprocess."""

    timeout: float = _TIMEOUT
    """Timeout for commands that run to completion."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        return self.string

    async def _start(self) -> asyncio.subprocess.Process:
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        return await asyncio.create_subprocess_shell(
            self.string,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )

    def _error(self, returncode: int | None, err: bytes | None) -> CommandException:
        errors = [f"Command '{self}' failed with return code {returncode}"]
        if err:
            errors.append(err.decode("utf-8"))
        _LOGGER.debug("\n".join(errors))
        return self.exc("\n".join(errors))

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the command to completion, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        async with _SEM:
            proc = await self._start()
            try:
                out, err = await asyncio.wait_for(proc.communicate(stdin), self.timeout)
            except asyncio.TimeoutError as err:
                proc.kill()
                await proc.wait()
                raise self.exc(f"Command '{self}' timed out") from err
        if proc.returncode:
            raise self._error(proc.returncode, err)
        return out

    async def stream_lines(self) -> AsyncGenerator[bytes, None]:
        """Run a long lived command, yielding each line of stdout as it arrives.

        The process is terminated when the consumer stops iterating. A non-zero
        exit raises the command exception once all output has been consumed.
        """
        _LOGGER.debug("Streaming command: %s", self)
        proc = await self._start()
        if proc.stdin:
            proc.stdin.close()
        try:
            if proc.stdout is None:
                raise self.exc(f"Command '{self}' has no output stream")
            async for line in proc.stdout:
                yield line
            await proc.wait()
            if proc.returncode:
                err = await proc.stderr.read() if proc.stderr else None
                raise self._error(proc.returncode, err)
        finally:
            if proc.returncode is None:
                _LOGGER.debug("Terminating command: %s", self)
                proc.terminate()
                await proc.wait()
