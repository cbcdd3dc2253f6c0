"""
pytest configuration, fixtures and a minimal HTTP client for the
server tests.
"""

import asyncio
import zlib
from pathlib import Path
from typing import NamedTuple

import pytest

from devserve.http.model import HTTPBodyWriter
from devserve.utils.codec import BytesTransform, TTransformed

PNG_HEAD: bytes = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01"


# -----------------------------------------------------------------------------
#
# DECODERS
#
# -----------------------------------------------------------------------------


class ZLibDecoder(BytesTransform):
	WBITS: int = zlib.MAX_WBITS

	def __init__(self) -> None:
		self.decompressor = zlib.decompressobj(wbits=self.WBITS)

	def feed(self, chunk: bytes, more: bool = False) -> TTransformed:
		try:
			return self.decompressor.decompress(chunk)
		except zlib.error:
			return False

	def flush(self) -> TTransformed:
		return self.decompressor.flush()


class DeflateDecoder(ZLibDecoder):
	pass


class GZipDecoder(ZLibDecoder):
	# Accepts both gzip and zlib headers
	WBITS = zlib.MAX_WBITS | 32


class ChunkedDecoder(BytesTransform):
	"""Removes the chunked framing, `complete` is set once the last chunk
	is read."""

	def __init__(self) -> None:
		self.pending: bytearray = bytearray()
		# Size of the chunk being read, `None` while reading its size line
		self.expected: int | None = None
		self.complete: bool = False

	def feed(self, chunk: bytes, more: bool = False) -> TTransformed:
		self.pending += chunk
		res = bytearray()
		while not self.complete:
			if self.expected is None:
				end = self.pending.find(b"\r\n")
				if end == -1:
					break
				try:
					# Chunk extensions follow a `;` and are ignored
					self.expected = int(self.pending[:end].split(b";", 1)[0], 16)
				except ValueError:
					return False
				del self.pending[: end + 2]
				if self.expected == 0:
					self.complete = True
			elif len(self.pending) >= self.expected + 2:
				res += self.pending[: self.expected]
				del self.pending[: self.expected + 2]
				self.expected = None
			else:
				break
		return bytes(res) if res else None

	def flush(self) -> TTransformed:
		return None if self.complete else False


# -----------------------------------------------------------------------------
#
# CLIENT
#
# -----------------------------------------------------------------------------


class Reply(NamedTuple):
	status: int
	headers: dict[str, str]
	body: bytes

	def header(self, name: str) -> str | None:
		return self.headers.get(name.lower())

	@property
	def content(self) -> bytes:
		"""The body, decoded from its content encoding."""
		decoder: BytesTransform | None = {
			"gzip": GZipDecoder,
			"deflate": DeflateDecoder,
		}.get(self.header("Content-Encoding") or "identity", lambda: None)()
		if decoder is None:
			return self.body
		return (decoder.feed(self.body) or b"") + (decoder.flush() or b"")


def parseReply(data: bytes) -> Reply:
	"""Parses a single HTTP response, decoding the chunked framing."""
	head, _, body = data.partition(b"\r\n\r\n")
	lines = head.decode("latin-1").split("\r\n")
	status = int(lines[0].split(" ", 2)[1])
	headers: dict[str, str] = {}
	for line in lines[1:]:
		name, _, value = line.partition(":")
		headers[name.strip().lower()] = value.strip()
	if headers.get("transfer-encoding") == "chunked":
		decoder = ChunkedDecoder()
		body = decoder.feed(body) or b""
		assert decoder.complete, "Chunked body is incomplete"
	return Reply(status, headers, body)


def rawRequest(
	path: str,
	method: str = "GET",
	headers: dict[str, str] | None = None,
	*,
	protocol: str = "HTTP/1.1",
	close: bool = True,
) -> bytes:
	lines = [f"{method} {path} {protocol}", "Host: 127.0.0.1"]
	lines += [f"{k}: {v}" for k, v in (headers or {}).items()]
	if close:
		lines.append("Connection: close")
	return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


async def exchange(port: int, payload: bytes, address: str = "127.0.0.1") -> bytes:
	"""Sends the payload and reads until the server closes the connection."""
	reader, writer = await asyncio.open_connection(address, port)
	try:
		writer.write(payload)
		await writer.drain()
		return await asyncio.wait_for(reader.read(), timeout=5.0)
	finally:
		writer.close()


async def fetch(
	port: int,
	path: str,
	method: str = "GET",
	headers: dict[str, str] | None = None,
	address: str = "127.0.0.1",
) -> Reply:
	return parseReply(
		await exchange(port, rawRequest(path, method, headers), address=address)
	)


class BufferWriter(HTTPBodyWriter):
	"""Collects what's written in memory."""

	def __init__(self) -> None:
		super().__init__()
		self.data = bytearray()

	async def _writeBytes(self, chunk, more: bool = False) -> bool:
		if chunk:
			self.data += chunk
			return True
		return False


@pytest.fixture
def site(tmp_path: Path) -> Path:
	"""A small site to serve."""
	(tmp_path / "index.html").write_text("hi")
	(tmp_path / "big.txt").write_bytes(b"Lorem ipsum dolor sit amet. " * 20_000)
	(tmp_path / "logo").write_bytes(PNG_HEAD + b"\x00" * 64)
	(tmp_path / "notes").write_text("plain notes")
	(tmp_path / "docs").mkdir()
	(tmp_path / "docs" / "index.html").write_text("<h1>Docs</h1>")
	return tmp_path


@pytest.fixture
def requests() -> list[tuple[str | None, str, int, str]]:
	"""Collects the logged requests."""
	return []


# EOF
