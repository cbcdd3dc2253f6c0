import gzip
import zlib

from devserve.utils.codec import (
	ChunkedEncoder,
	DeflateEncoder,
	GZipEncoder,
	IdemCodec,
)

from conftest import ChunkedDecoder, DeflateDecoder, GZipDecoder

DATA: bytes = bytes(range(256)) * 512


def encode(encoder, data: bytes, size: int = 4096) -> bytes:
	res = bytearray()
	for i in range(0, len(data), size):
		res += encoder.feed(data[i : i + size], True) or b""
	res += encoder.flush() or b""
	return bytes(res)


def test_gzip_is_readable_by_gzip_module():
	assert gzip.decompress(encode(GZipEncoder(), DATA)) == DATA


def test_deflate_is_zlib_wrapped():
	assert zlib.decompress(encode(DeflateEncoder(), DATA)) == DATA


def test_decoders_restore_streamed_data():
	decoder = GZipDecoder()
	assert encode(decoder, encode(GZipEncoder(), DATA), 100) == DATA
	decoder = DeflateDecoder()
	assert encode(decoder, encode(DeflateEncoder(), DATA), 100) == DATA


def test_idem_codec():
	codec = IdemCodec()
	assert codec.feed(b"abc") == b"abc"
	assert codec.flush() is None


def test_chunked_framing():
	encoder = ChunkedEncoder()
	assert encoder.feed(b"hello") == b"5\r\nhello\r\n"
	assert encoder.feed(b"") is None
	assert encoder.feed(b"x" * 26) == b"1A\r\n" + b"x" * 26 + b"\r\n"
	assert encoder.flush() == b"0\r\n\r\n"


def test_chunked_decoder_across_feeds():
	framed = b"5\r\nhello\r\n6\r\n world\r\n0\r\n\r\n"
	decoder = ChunkedDecoder()
	res = bytearray()
	for i in range(0, len(framed), 3):
		res += decoder.feed(framed[i : i + 3]) or b""
	assert bytes(res) == b"hello world"
	assert decoder.complete
	assert decoder.flush() is None


def test_chunked_decoder_incomplete():
	decoder = ChunkedDecoder()
	decoder.feed(b"5\r\nhel")
	assert decoder.flush() is False
