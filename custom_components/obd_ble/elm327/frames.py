"""Reassembly of prompt-terminated ELM327 responses from BLE notification chunks."""

from __future__ import annotations

import logging
from typing import Optional

PROMPT = b">"
REQUEST_TERMINATOR = "\r"
# Longest prompt-less run kept before the buffer is thrown away
MAX_PENDING = 512

LOGGER = logging.getLogger(__name__)


class FrameAssembler:
    """Accumulate inbound bytes until the interpreter prints its prompt.

    A BLE notification rarely carries a whole response, so bytes are buffered
    until the prompt character shows up. The text before the prompt is the
    frame; the prompt and anything that followed it in the buffer are dropped.
    At most one frame is produced per call to :meth:`feed`.
    """

    def __init__(self, terminator: bytes = PROMPT, max_pending: int = MAX_PENDING) -> None:
        if len(terminator) != 1:
            raise ValueError("Frame terminator must be a single byte")
        self._terminator = terminator
        self.max_pending = max_pending
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received since the last completed frame."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> Optional[str]:
        """Append ``chunk`` and return a completed frame, if any."""
        self._buffer.extend(chunk)
        position = self._buffer.find(self._terminator)
        if position == -1:
            if len(self._buffer) > self.max_pending:
                LOGGER.warning(
                    "No prompt after %s bytes, discarding buffer", len(self._buffer)
                )
                self._buffer.clear()
            return None

        frame = self._buffer[:position].decode("ascii", errors="replace").strip()
        discarded = len(self._buffer) - position - 1
        if discarded:
            LOGGER.debug("Dropping %s byte(s) received after the prompt", discarded)
        self._buffer.clear()
        return frame

    def clear(self) -> None:
        self._buffer.clear()


def encode_request(command: str) -> bytes:
    """Return the wire form of an interpreter command."""
    return (command + REQUEST_TERMINATOR).encode("ascii")


__all__ = ["MAX_PENDING", "PROMPT", "REQUEST_TERMINATOR", "FrameAssembler", "encode_request"]
