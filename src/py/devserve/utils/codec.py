import zlib
from abc import ABC, abstractmethod
from typing import Literal

from mypy_extensions import mypyc_attr

# The result of a transform step: some bytes, nothing yet (`None`), or
# `False` when the input is invalid.
TTransformed = bytes | None | Literal[False]


@mypyc_attr(allow_interpreted_subclasses=True)
class BytesTransform(ABC):
	"""A streaming transform of bytes, fed chunk by chunk and flushed once
	the input is over."""

	@abstractmethod
	def feed(self, chunk: bytes, more: bool = False) -> TTransformed:
		"""Feeds bytes to the transform, `more` telling if more are to come."""

	@abstractmethod
	def flush(self) -> TTransformed:
		"""Returns what the transform still holds, ending the stream."""


class IdemCodec(BytesTransform):
	"""Passes the bytes through, used for the `identity` encoding."""

	def feed(self, chunk: bytes, more: bool = False) -> TTransformed:
		return chunk

	def flush(self) -> TTransformed:
		return None


# -----------------------------------------------------------------------------
#
# COMPRESSION
#
# -----------------------------------------------------------------------------


class ZLibEncoder(BytesTransform):
	"""Compresses with zlib, the container depending on `wbits`."""

	WBITS: int = zlib.MAX_WBITS

	__slots__ = ["compressor"]

	def __init__(self, level: int = 6) -> None:
		self.compressor = zlib.compressobj(level=level, wbits=self.WBITS)

	def feed(self, chunk: bytes, more: bool = False) -> TTransformed:
		return self.compressor.compress(chunk)

	def flush(self) -> TTransformed:
		return self.compressor.flush()


# NOTE: HTTP's `deflate` is the zlib format (RFC 1950), not a raw deflate
# stream, which is what `MAX_WBITS` gives.
class DeflateEncoder(ZLibEncoder):
	pass


class GZipEncoder(ZLibEncoder):
	WBITS = zlib.MAX_WBITS | 16


# -----------------------------------------------------------------------------
#
# CHUNKED FRAMING
#
# -----------------------------------------------------------------------------


# SEE: https://httpwg.org/specs/rfc9112.html#chunked.encoding
class ChunkedEncoder(BytesTransform):
	"""Frames each fed chunk as an HTTP chunk, flushing emits the last
	(empty) chunk. Trailers are not supported."""

	def feed(self, chunk: bytes, more: bool = False) -> TTransformed:
		if not chunk:
			# An empty chunk would end the body
			return None
		return b"%X\r\n%b\r\n" % (len(chunk), chunk)

	def flush(self) -> TTransformed:
		return b"0\r\n\r\n"


# EOF
