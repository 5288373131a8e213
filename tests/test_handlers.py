"""Tests for body handlers."""

import pytest
from httplane import BodyHandlers, Headers, HttpVersion, LineSequence
from httplane.http.handlers import StringHandler, content_charset
from httplane.http.response import ResponseHead


class FakeStream:
    """Stands in for BodyStream: yields fixed chunks and records closing."""

    def __init__(self, *chunks: bytes):
        self._chunks = iter(chunks)
        self.closed = False
        self.drained = False
        self.bytes_read = 0

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        if self.closed:
            raise StopIteration
        try:
            chunk = next(self._chunks)
        except StopIteration:
            self.drained = True
            raise
        self.bytes_read += len(chunk)
        return chunk

    def read(self) -> bytes:
        return b"".join(self)

    def drain(self) -> None:
        for _ in self:
            pass

    def close(self) -> None:
        self.closed = True


def head(content_type: str = "text/plain") -> ResponseHead:
    return ResponseHead(200, "OK", HttpVersion.HTTP_1_1, Headers([("Content-Type", content_type)]))


class TestContentCharset:
    """Tests for charset extraction."""

    @pytest.mark.parametrize(
        "content_type,expected",
        [
            ("text/html; charset=ISO-8859-1", "ISO-8859-1"),
            ('text/plain; format=flowed; charset="utf-8"', "utf-8"),
            ("application/xml", None),
            ("text/plain; charset=", None),
        ],
    )
    def test_charset(self, content_type, expected):
        """Test the charset parameter is read from Content-Type."""
        assert content_charset(head(content_type)) == expected


class TestStringHandler:
    """Tests for whole-body text decoding."""

    def test_utf8(self):
        """Test UTF-8 is decoded across chunk boundaries."""
        data = "Grüße".encode("utf-8")
        body = BodyHandlers.of_string().consume(FakeStream(data[:3], data[3:]), head())
        assert body == "Grüße"

    def test_header_charset(self):
        """Test the Content-Type charset is honoured."""
        stream = FakeStream("café".encode("latin-1"))
        assert BodyHandlers.of_string().consume(stream, head("text/plain; charset=latin-1")) == "café"

    def test_explicit_charset_overrides_header(self):
        """Test a handler charset wins over the header."""
        stream = FakeStream("żółw".encode("utf-16"))
        assert BodyHandlers.of_string("utf-16").consume(stream, head("text/plain; charset=utf-8")) == "żółw"

    def test_unknown_charset_falls_back(self):
        """Test an unknown charset name falls back to UTF-8."""
        assert StringHandler.decode(b"plain ascii", "no-such-charset") == "plain ascii"

    def test_undecodable_bytes_do_not_raise(self):
        """Test invalid bytes still produce a string."""
        assert isinstance(StringHandler.decode(b"\xff\xfe\xfa invalid \x80"), str)

    def test_empty_body(self):
        """Test an empty body decodes to an empty string."""
        assert BodyHandlers.of_string().consume(FakeStream(), head()) == ""


class TestBytesAndDiscarding:
    """Tests for the raw and discarding handlers."""

    def test_bytes(self):
        """Test of_bytes concatenates the chunks."""
        assert BodyHandlers.of_bytes().consume(FakeStream(b"ab", b"cd"), head()) == b"abcd"

    def test_discarding(self):
        """Test discarding drains and returns None."""
        stream = FakeStream(b"ab", b"cd")
        assert BodyHandlers.discarding().consume(stream, head()) is None
        assert stream.drained


class TestFileHandler:
    """Tests for streaming to a file."""

    def test_writes_file(self, tmp_path):
        """Test chunks are written in order and the path returned."""
        target = tmp_path / "image.png"
        stream = FakeStream(b"\x89PNG", b"\r\n", b"data")
        assert BodyHandlers.of_file(target).consume(stream, head("image/png")) == target
        assert target.read_bytes() == b"\x89PNG\r\ndata"
        assert stream.closed

    def test_truncates_existing_file(self, tmp_path):
        """Test an existing file is replaced."""
        target = tmp_path / "out.txt"
        target.write_bytes(b"old content that is longer")
        BodyHandlers.of_file(str(target)).consume(FakeStream(b"new"), head())
        assert target.read_bytes() == b"new"

    def test_missing_directory(self, tmp_path):
        """Test a missing directory raises and closes the stream."""
        stream = FakeStream(b"x")
        with pytest.raises(FileNotFoundError):
            BodyHandlers.of_file(tmp_path / "missing" / "out.txt").consume(stream, head())
        assert stream.closed


class TestLineSequence:
    """Tests for lazy line splitting."""

    def test_mixed_terminators(self):
        """Test CRLF, CR and LF all end a line."""
        lines = LineSequence(FakeStream(b"one\r\ntwo\rthree\nfour"))
        assert list(lines) == ["one", "two", "three", "four"]

    def test_trailing_newline_adds_no_empty_line(self):
        """Test a final terminator does not yield an empty line."""
        assert list(LineSequence(FakeStream(b"a\nb\n"))) == ["a", "b"]

    def test_blank_lines_kept(self):
        """Test empty lines between terminators are yielded."""
        assert list(LineSequence(FakeStream(b"a\n\nb\r\n\r\nc"))) == ["a", "", "b", "", "c"]

    def test_crlf_split_across_chunks(self):
        """Test a CRLF split over two chunks is one terminator."""
        assert list(LineSequence(FakeStream(b"a\r", b"\nb"))) == ["a", "b"]

    def test_lone_cr_at_end(self):
        """Test a CR at end of body terminates the last line."""
        assert list(LineSequence(FakeStream(b"a\r"))) == ["a"]

    def test_multibyte_split_across_chunks(self):
        """Test a UTF-8 sequence split over chunks decodes once."""
        data = "ä\nö".encode("utf-8")
        assert list(LineSequence(FakeStream(data[:1], data[1:]))) == ["ä", "ö"]

    def test_is_lazy(self):
        """Test lines are read only as the caller iterates."""
        stream = FakeStream(b"first\n", b"second\n")
        lines = LineSequence(stream)
        assert stream.bytes_read == 0
        assert next(lines) == "first"
        assert stream.bytes_read == len(b"first\n")

    def test_not_restartable(self):
        """Test a consumed sequence stays exhausted."""
        lines = LineSequence(FakeStream(b"a\nb"))
        assert list(lines) == ["a", "b"]
        assert list(lines) == []

    def test_close_early(self):
        """Test closing stops iteration and closes the stream."""
        stream = FakeStream(b"a\nb\nc\n")
        with LineSequence(stream) as lines:
            assert next(lines) == "a"
        assert stream.closed
        assert list(lines) == []

    def test_of_lines_uses_header_charset(self):
        """Test the handler passes the Content-Type charset on."""
        stream = FakeStream("é\n".encode("latin-1"))
        lines = BodyHandlers.of_lines().consume(stream, head("text/plain; charset=latin-1"))
        assert list(lines) == ["é"]
