import mimetypes
import os
from pathlib import Path
from typing import NamedTuple

mimetypes.init()

# Overrides and additions to the platform's `mimetypes` registry, keyed
# by lowercase extension without the dot.
MIME_TYPES: dict[str, str] = dict(
	bz2="application/x-bzip",
	gz="application/x-gzip",
	js="application/javascript",
	mjs="application/javascript",
	json="application/json",
	map="application/json",
	md="text/markdown",
	wasm="application/wasm",
	webmanifest="application/manifest+json",
	woff="font/woff",
	woff2="font/woff2",
)

DEFAULT_CONTENT_TYPE: str = "text/plain"

# The number of leading bytes read from a file for signature detection
SNIFF_SIZE: int = 20


class Signature(NamedTuple):
	"""A binary signature: `magic` bytes expected at `offset`."""

	mime: str
	magic: bytes
	offset: int = 0
	# An optional second pattern, for container formats (RIFF, ftyp, ...)
	extra: bytes | None = None
	extraOffset: int = 0

	def matches(self, head: bytes) -> bool:
		if head[self.offset : self.offset + len(self.magic)] != self.magic:
			return False
		if self.extra is not None:
			start = self.extraOffset
			return head[start : start + len(self.extra)] == self.extra
		return True


# NOTE: More specific signatures must come before the ones they share
# a prefix with (ie. RIFF containers).
SIGNATURES: tuple[Signature, ...] = (
	Signature("image/png", b"\x89PNG\r\n\x1a\n"),
	Signature("image/jpeg", b"\xff\xd8\xff"),
	Signature("image/gif", b"GIF87a"),
	Signature("image/gif", b"GIF89a"),
	Signature("image/webp", b"RIFF", extra=b"WEBP", extraOffset=8),
	Signature("audio/x-wav", b"RIFF", extra=b"WAVE", extraOffset=8),
	Signature("video/x-msvideo", b"RIFF", extra=b"AVI ", extraOffset=8),
	Signature("image/bmp", b"BM"),
	Signature("image/x-icon", b"\x00\x00\x01\x00"),
	Signature("image/tiff", b"II*\x00"),
	Signature("image/tiff", b"MM\x00*"),
	Signature("application/pdf", b"%PDF-"),
	Signature("application/zip", b"PK\x03\x04"),
	Signature("application/gzip", b"\x1f\x8b\x08"),
	Signature("application/x-bzip2", b"BZh"),
	Signature("application/x-7z-compressed", b"7z\xbc\xaf\x27\x1c"),
	Signature("application/x-xz", b"\xfd7zXZ\x00"),
	Signature("application/x-rar-compressed", b"Rar!\x1a\x07"),
	Signature("application/wasm", b"\x00asm"),
	Signature("font/woff", b"wOFF"),
	Signature("font/woff2", b"wOF2"),
	Signature("font/otf", b"OTTO"),
	Signature("font/ttf", b"\x00\x01\x00\x00\x00"),
	Signature("audio/mpeg", b"ID3"),
	Signature("audio/ogg", b"OggS"),
	Signature("audio/x-flac", b"fLaC"),
	Signature("video/quicktime", b"ftypqt", offset=4),
	Signature("audio/mp4", b"ftypM4A", offset=4),
	Signature("video/mp4", b"ftyp", offset=4),
	Signature("application/x-elf", b"\x7fELF"),
	Signature("application/x-sqlite3", b"SQLite format 3\x00"),
)


def sniff(head: bytes) -> str | None:
	"""Returns the content type matching the signature at the start of `head`,
	if any."""
	for signature in SIGNATURES:
		if signature.matches(head):
			return signature.mime
	return None


def extension(path: Path | str) -> str:
	"""Returns the lowercase extension of `path`, without the dot."""
	_, ext = os.path.splitext(str(path))
	return ext[1:].lower()


def contentType(path: Path | str) -> str | None:
	"""Guesses the content type from the extension of the given path"""
	ext = extension(path)
	if not ext:
		return None
	return MIME_TYPES.get(ext) or mimetypes.guess_type(f"file.{ext}", strict=False)[0]


class MimeResolver:
	"""Resolves the content type of a file, first from its extension, then
	by sniffing its first bytes, defaulting to `text/plain`."""

	def __init__(self, default: str = DEFAULT_CONTENT_TYPE) -> None:
		self.default: str = default
		# Only extension lookups are cached, sniffing depends on the file
		self.cache: dict[str, str | None] = {}

	def byExtension(self, path: Path | str) -> str | None:
		ext = extension(path)
		if ext not in self.cache:
			self.cache[ext] = contentType(path)
		return self.cache[ext]

	def bySignature(self, path: Path | str) -> str | None:
		# Any I/O error propagates, the caller treats the file as missing
		with open(path, "rb") as f:
			head = f.read(SNIFF_SIZE)
		return sniff(head)

	def resolve(self, path: Path | str) -> str:
		return self.byExtension(path) or self.bySignature(path) or self.default


# EOF
