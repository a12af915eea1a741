# ==============================================================================
# round_ingestor.py
# ------------------------------------------------------------------------------
# Streams a broadcast round's PGN from Lichess under a wall-clock deadline,
# parses it with `parse_pgn`, and assembles one Game per record.
#
# Execution flow:
#   1. A worker thread opens the chunked stream and feeds a line buffer
#   2. The caller waits on a completion event, with the deadline as timeout
#   3. Whichever finishes first wins:
#        • stream end   → flush the buffer, proceed
#        • deadline     → seal the buffer, flush, proceed; the response is
#                         closed in the background
#   4. Transport failure with zero bytes received → TransportError
#      Transport failure after partial data     → degrade, proceed
# ==============================================================================

from __future__ import annotations

import codecs
import logging
import threading
import time
from typing import List, Optional, Tuple

import requests

from roundwatch.assembly.game_assembler import assemble_game
from roundwatch.exceptions import TransportError
from roundwatch.models import Game
from roundwatch.parsing.pgn_grammar import parse_pgn
from roundwatch.utils.config_utils import (
    auth_headers,
    get_api_timeout,
    get_base_url,
    get_stream_deadline_ms,
)
from roundwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("round_ingestor", level=logging.INFO)

STREAM_PATH = "/api/stream/broadcast/round/{round_id}.pgn"

# ------------------------------------------------------------------------------
# Lichess API session
# ------------------------------------------------------------------------------

HTTP = requests.Session()


# ==============================================================================
# Line buffer
# ==============================================================================


class _PgnBuffer:
    """
    Thread-safe accumulator for the streamed document.

    Bytes are decoded incrementally, so a UTF-8 sequence split across two
    chunks survives. Complete non-blank lines go to `lines`; the trailing
    partial line waits in `_partial` until more data or a flush arrives.
    Once sealed, further chunks are ignored.
    """

    def __init__(self) -> None:
        self.lines: List[str] = []
        self.bytes_received = 0
        self._partial = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._lock = threading.Lock()
        self._sealed = False

    def feed(self, chunk: bytes) -> bool:
        """Add one chunk; False once the buffer has been sealed."""
        with self._lock:
            if self._sealed:
                return False
            self.bytes_received += len(chunk)
            self._partial += self._decoder.decode(chunk)
            *complete, self._partial = self._partial.split("\n")
            self.lines.extend(line for line in complete if line.strip())
            return True

    def seal(self) -> str:
        """Stop accepting data, flush the partial line and return the document."""
        with self._lock:
            if not self._sealed:
                self._sealed = True
                self._partial += self._decoder.decode(b"", final=True)
                for line in self._partial.split("\n"):
                    if line.strip():
                        self.lines.append(line)
                self._partial = ""
            return "\n".join(self.lines)

    @property
    def sealed(self) -> bool:
        with self._lock:
            return self._sealed


class _StreamReader:
    """Worker-thread side of one ingestion: connect, read, record failures."""

    def __init__(
        self,
        url: str,
        headers: dict,
        buffer: _PgnBuffer,
        timeout: Tuple[float, float],
    ) -> None:
        self.url = url
        self.headers = headers
        self.buffer = buffer
        self.timeout = timeout
        self.done = threading.Event()
        self.error: Optional[Exception] = None
        self._response: Optional[requests.Response] = None
        self._lock = threading.Lock()

    def run(self) -> None:
        try:
            self._read()
        except (requests.RequestException, OSError, ValueError) as exc:
            if self.buffer.sealed:
                LOGGER.debug("Stream read ended after cancellation: %s", exc)
            else:
                self.error = exc
        except TransportError as exc:
            self.error = exc
        finally:
            self.done.set()

    def _read(self) -> None:
        resp = HTTP.get(
            self.url,
            headers=self.headers,
            stream=True,
            timeout=self.timeout,
        )
        with self._lock:
            self._response = resp
        if self.buffer.sealed:
            resp.close()
            return

        if not resp.ok:
            raise TransportError(
                f"Failed to stream round PGN: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
            )

        try:
            for chunk in resp.iter_content(chunk_size=None):
                if not chunk:
                    continue
                if not self.buffer.feed(chunk):
                    break
        finally:
            _close_quietly(resp)

    def cancel(self) -> None:
        """
        Close the response, if any, on a separate daemon thread.

        `Response.close()` waits for a read that is blocked on the socket, so
        the caller must not wait for it.
        """
        with self._lock:
            resp = self._response
        if resp is not None:
            threading.Thread(
                target=_close_quietly,
                args=(resp,),
                name="round-stream-close",
                daemon=True,
            ).start()


def _close_quietly(resp: requests.Response) -> None:
    try:
        resp.close()
    except (requests.RequestException, OSError) as exc:
        LOGGER.debug("Error closing round stream: %s", exc)


# ==============================================================================
# Public API
# ==============================================================================


def round_stream_url(round_id: str, base_url: Optional[str] = None) -> str:
    return f"{base_url or get_base_url()}{STREAM_PATH.format(round_id=round_id)}"


def stream_round_pgn(
    round_id: str,
    deadline_ms: Optional[int] = None,
    token: Optional[str] = None,
    base_url: Optional[str] = None,
) -> str:
    """
    Collect the round's PGN text until the stream ends or `deadline_ms` passes.

    Raises
    ------
    TransportError
        The source could not be reached, or rejected the request, and no
        bytes were received.
    """
    deadline_ms = get_stream_deadline_ms() if deadline_ms is None else deadline_ms
    url = round_stream_url(round_id, base_url)
    buffer = _PgnBuffer()
    deadline_s = max(deadline_ms, 0) / 1000
    # Read timeout past the deadline so an orphaned worker cannot hang forever
    timeout = (float(get_api_timeout()), deadline_s + 1.0)
    reader = _StreamReader(url, auth_headers(token), buffer, timeout)

    LOGGER.info("Streaming round '%s' (deadline %d ms)…", round_id, deadline_ms)
    started = time.monotonic()

    worker = threading.Thread(
        target=reader.run, name=f"round-stream-{round_id}", daemon=True
    )
    worker.start()
    finished = reader.done.wait(deadline_s)

    document = buffer.seal()
    reader.cancel()
    elapsed_ms = (time.monotonic() - started) * 1000

    error = reader.error if finished else None
    if error is not None:
        if buffer.bytes_received == 0:
            LOGGER.error("Round '%s' unreachable – %s", round_id, error)
            if isinstance(error, TransportError):
                raise error
            raise TransportError(f"Failed to stream round PGN: {error}") from error
        LOGGER.warning(
            "Round '%s' stream failed after %d bytes – keeping partial PGN (%s)",
            round_id,
            buffer.bytes_received,
            error,
        )
    elif not finished:
        LOGGER.info(
            "Deadline reached for round '%s' after %.0f ms – %d bytes captured",
            round_id,
            elapsed_ms,
            buffer.bytes_received,
        )
    else:
        LOGGER.info(
            "Round '%s' stream closed after %.0f ms – %d bytes",
            round_id,
            elapsed_ms,
            buffer.bytes_received,
        )

    return document


def games_from_pgn(document: str) -> List[Game]:
    """Parse a PGN document and assemble every record, in document order."""
    games = [assemble_game(parsed) for parsed in parse_pgn(document)]
    LOGGER.info("Assembled %d game(s)", len(games))
    return games


def ingest_round(
    round_id: str,
    deadline_ms: Optional[int] = None,
    token: Optional[str] = None,
    base_url: Optional[str] = None,
) -> List[Game]:
    """Stream, parse and assemble one round. Only TransportError escapes."""
    document = stream_round_pgn(round_id, deadline_ms, token=token, base_url=base_url)
    return games_from_pgn(document)
