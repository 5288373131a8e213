"""Body handlers: strategies turning a response byte stream into a value."""

from __future__ import annotations

import codecs
import logging
import re
from collections.abc import Iterator
from pathlib import Path
from types import TracebackType
from typing import Optional, Protocol, TypeVar, Union

from charset_normalizer import from_bytes as detect_encoding

from .response import ResponseHead
from .transport import BodyStream

logger = logging.getLogger(__name__)

T_co = TypeVar("T_co", covariant=True)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def content_charset(head: ResponseHead) -> Optional[str]:
    """Charset parameter of the Content-Type header, if any."""
    content_type = head.headers.get("Content-Type", "")
    for part in content_type.split(";")[1:]:
        part = part.strip()
        if part.lower().startswith("charset="):
            return part.split("=", 1)[1].strip().strip("\"'") or None
    return None


class BodyHandler(Protocol[T_co]):
    """
    Converts a response body stream into a typed value.

    Implementations must drain or close ``stream`` before returning (or,
    for lazy results, when the result is exhausted or closed) so the
    connection can be reused or released.
    """

    def consume(self, stream: BodyStream, head: ResponseHead) -> T_co:
        ...


class StringHandler:
    """
    Decodes the whole body as text.

    Fallback chain:
    1. Explicit charset passed to the handler
    2. Content-Type header charset
    3. UTF-8
    4. charset-normalizer detection
    5. UTF-8 with replacement
    """

    def __init__(self, charset: Optional[str] = None) -> None:
        self.charset = charset

    def consume(self, stream: BodyStream, head: ResponseHead) -> str:
        return self.decode(stream.read(), self.charset or content_charset(head))

    @staticmethod
    def decode(content: bytes, charset: Optional[str] = None) -> str:
        for encoding in (charset, "utf-8"):
            if not encoding:
                continue
            try:
                return content.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                logger.debug(f"Failed to decode body as {encoding}")

        best_match = detect_encoding(content).best()
        if best_match is not None:
            logger.debug(f"Detected encoding: {best_match.encoding}")
            return str(best_match)

        return content.decode("utf-8", errors="replace")


class BytesHandler:
    """Returns the raw body bytes."""

    def consume(self, stream: BodyStream, head: ResponseHead) -> bytes:
        return stream.read()


class LineSequence(Iterator[str]):
    """
    Lazy, finite, non-restartable sequence of body lines.

    Lines are split on ``\\r\\n``, ``\\r`` and ``\\n``; terminators are not
    included and a trailing terminator does not produce an empty last line.
    The underlying stream is closed when the sequence is exhausted or
    closed, so use it as a context manager when stopping early.

    Example:
        response = client.send(request, BodyHandlers.of_lines())
        with response.body as lines:
            for line in lines:
                print(line)
    """

    def __init__(self, stream: BodyStream, charset: Optional[str] = None) -> None:
        self._stream = stream
        try:
            decoder_factory = codecs.getincrementaldecoder(charset or "utf-8")
        except LookupError:
            logger.debug(f"Unknown charset {charset!r}, decoding lines as UTF-8")
            decoder_factory = codecs.getincrementaldecoder("utf-8")
        self._decoder = decoder_factory(errors="replace")
        self._buffer = ""
        self._pending: list[str] = []
        self._eof = False

    def __iter__(self) -> LineSequence:
        return self

    def __next__(self) -> str:
        while not self._pending:
            if self._eof:
                raise StopIteration
            self._fill()
        return self._pending.pop(0)

    def _fill(self) -> None:
        try:
            chunk = next(self._stream)
        except StopIteration:
            self._eof = True
            self._buffer += self._decoder.decode(b"", final=True)
            self._split(final=True)
            return
        self._buffer += self._decoder.decode(chunk)
        self._split(final=False)

    def _split(self, final: bool) -> None:
        pos = 0
        for match in _LINE_BREAK.finditer(self._buffer):
            # a trailing \r may be the first half of \r\n
            if not final and match.group() == "\r" and match.end() == len(self._buffer):
                break
            self._pending.append(self._buffer[pos : match.start()])
            pos = match.end()
        self._buffer = self._buffer[pos:]
        if final and self._buffer:
            self._pending.append(self._buffer)
            self._buffer = ""

    def close(self) -> None:
        """Stop reading; releases the connection without draining it."""
        self._eof = True
        self._pending.clear()
        self._stream.close()

    def __enter__(self) -> LineSequence:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()


class LineSequenceHandler:
    """Produces a LineSequence; the body is read as the caller iterates."""

    def __init__(self, charset: Optional[str] = None) -> None:
        self.charset = charset

    def consume(self, stream: BodyStream, head: ResponseHead) -> LineSequence:
        return LineSequence(stream, self.charset or content_charset(head))


class FileHandler:
    """
    Streams the body into a file and returns its path.

    The file is created or truncated; creating the directory and removing
    the file afterwards is up to the caller.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def consume(self, stream: BodyStream, head: ResponseHead) -> Path:
        try:
            with self.path.open("wb") as fh:
                for chunk in stream:
                    fh.write(chunk)
        finally:
            stream.close()
        logger.debug(f"Wrote {stream.bytes_read} bytes to {self.path}")
        return self.path


class DiscardingHandler:
    """Drains the body and returns None."""

    def consume(self, stream: BodyStream, head: ResponseHead) -> None:
        stream.drain()


class BodyHandlers:
    """Factories for the built-in body handlers."""

    @staticmethod
    def of_string(charset: Optional[str] = None) -> StringHandler:
        return StringHandler(charset)

    @staticmethod
    def of_bytes() -> BytesHandler:
        return BytesHandler()

    @staticmethod
    def of_lines(charset: Optional[str] = None) -> LineSequenceHandler:
        return LineSequenceHandler(charset)

    @staticmethod
    def of_file(path: Union[str, Path]) -> FileHandler:
        return FileHandler(path)

    @staticmethod
    def discarding() -> DiscardingHandler:
        return DiscardingHandler()
