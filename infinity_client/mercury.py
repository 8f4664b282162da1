"""Mercury Bridge - runs the Mercury client adapter for zCap-authorized calls.

The adapter is an external executable that performs the request itself and
prints everything (log lines, EDV document content and the payload) to one
stdout stream. A literal marker separates the preamble from the payload:

    <log lines and document content>\\n<MARKER> <payload>\\n

"EDV Stream:" marks a download, "Response:" marks a request. The output is
treated as untrusted bytes: a missing marker is an error, never an empty
payload.

Lifecycle of one call: IDLE -> SPAWNED -> COMPLETED | TIMED_OUT | FAILED.
On timeout the adapter and every process it started are killed, and the
adapter is reaped within a bounded grace period, before the error is raised.
"""

from __future__ import annotations

import os
import signal
import subprocess
from enum import Enum

import structlog

from infinity_client.models import MercuryOperation, MercuryOutput

logger = structlog.get_logger(__name__)


class MercuryError(Exception):
    """Base class for Mercury bridge errors."""


class MercuryTimeoutError(MercuryError):
    """Raised when the adapter does not finish within the timeout."""


class MercuryProcessError(MercuryError):
    """Raised when the adapter cannot be started or exits non-zero."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class MarkerNotFoundError(MercuryError):
    """Raised when the adapter output lacks the payload marker."""


class BridgeState(str, Enum):
    IDLE = "idle"
    SPAWNED = "spawned"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


# Payload markers per operation
MARKERS: dict[MercuryOperation, bytes] = {
    MercuryOperation.DOWNLOAD: b"EDV Stream:",
    MercuryOperation.REQUEST: b"Response:",
}

# Sub-command names passed to the adapter; download requires adapter 3.0.0+
SUBCOMMANDS: dict[MercuryOperation, str] = {
    MercuryOperation.DOWNLOAD: "get -d",
    MercuryOperation.REQUEST: "request",
}


def split_output(output: bytes, marker: bytes) -> MercuryOutput:
    """Split adapter stdout around the first occurrence of *marker*.

    content is everything before the marker without the separator byte
    that precedes it. data starts after the marker and the separator byte
    that follows it, and drops the trailing newline.

    Raises:
        MarkerNotFoundError: If *marker* does not occur in *output*.
    """
    index = output.find(marker)
    if index < 0:
        raise MarkerNotFoundError(f"marker {marker.decode()!r} not found in Mercury client output")
    content = output[:max(index - 1, 0)]
    data = output[index + len(marker) + 1:len(output) - 1]
    return MercuryOutput(content=content, data=data)


class MercuryBridge:
    """Runs one Mercury client adapter invocation.

    Usage:
        bridge = MercuryBridge()
        output = bridge.run(MercuryOperation.DOWNLOAD, "https://edv.example/docs/z1")
        payload = output.data

    A bridge is single-use; state reports where the last run ended.
    """

    DEFAULT_EXECUTABLE = "mercury-client"

    # Hard limit for one adapter run (seconds)
    TIMEOUT = 60.0

    # Bound on reaping a killed adapter (seconds)
    REAP_TIMEOUT = 2.0

    def __init__(self, executable: str | None = None, timeout: float | None = None) -> None:
        self._executable = executable or self.DEFAULT_EXECUTABLE
        self._timeout = self.TIMEOUT if timeout is None else timeout
        self.state = BridgeState.IDLE

    def run(self, operation: MercuryOperation, target: str) -> MercuryOutput:
        """Run the adapter and split its output.

        Args:
            operation: DOWNLOAD or REQUEST.
            target: URL of the HTTP API or EDV resource.

        Raises:
            MercuryTimeoutError: If the adapter runs longer than the timeout.
            MercuryProcessError: If the adapter is missing or exits non-zero.
            MarkerNotFoundError: If stdout has no payload marker.
        """
        operation = MercuryOperation(operation)
        command = [self._executable, SUBCOMMANDS[operation], target]
        logger.debug("starting Mercury client", operation=operation.value, executable=self._executable)

        try:
            # New session: the adapter and its children form one process group
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            self.state = BridgeState.FAILED
            raise MercuryProcessError(f"cannot start Mercury client {self._executable!r}: {e}") from e
        self.state = BridgeState.SPAWNED

        try:
            stdout, stderr = process.communicate(timeout=self._timeout)
        except subprocess.TimeoutExpired as e:
            self._kill(process)
            self.state = BridgeState.TIMED_OUT
            logger.error("Mercury client timed out", operation=operation.value, timeout=self._timeout)
            raise MercuryTimeoutError(f"Mercury client timed out after {self._timeout}s") from e

        if process.returncode != 0:
            self.state = BridgeState.FAILED
            stderr_text = stderr.decode("utf-8", errors="replace").strip()
            logger.error(
                "error executing Mercury client",
                operation=operation.value,
                returncode=process.returncode,
                stderr=stderr_text,
            )
            raise MercuryProcessError(
                f"Mercury client exited with status {process.returncode}: {stderr_text}",
                returncode=process.returncode,
                stderr=stderr_text,
            )

        try:
            output = split_output(stdout, MARKERS[operation])
        except MarkerNotFoundError:
            self.state = BridgeState.FAILED
            raise
        self.state = BridgeState.COMPLETED
        return output

    def _kill(self, process: subprocess.Popen) -> None:
        """Kill the adapter's process group, then reap the adapter.

        Children that left the group may still hold the pipes open, so the
        reap is bounded and the pipes are closed regardless.
        """
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            # Whole group already gone
            pass
        try:
            process.communicate(timeout=self.REAP_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("Mercury client output still open after kill", pid=process.pid)
        finally:
            for pipe in (process.stdout, process.stderr):
                if pipe is not None:
                    pipe.close()
            if process.poll() is None:
                process.kill()
                process.wait(timeout=self.REAP_TIMEOUT)
