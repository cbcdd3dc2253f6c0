from enum import Enum
from typing import Iterator

from ..utils.io import LineParser, LineTooLong
from .model import (
	HTTPAtom,
	HTTPBodyBlob,
	HTTPHeaders,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestLine,
	headername,
)

# -----------------------------------------------------------------------------
#
# LINES
#
# -----------------------------------------------------------------------------


def parseRequestLine(line: bytes) -> HTTPRequestLine | None:
	"""Parses `METHOD target PROTOCOL`, returning `None` when the line is
	not a request line."""
	try:
		text: str = line.decode("ascii")
	except UnicodeDecodeError:
		return None
	method, _, rest = text.partition(" ")
	target, _, protocol = rest.rpartition(" ")
	if not method or not target or not protocol.startswith("HTTP/"):
		return None
	path, _, query = target.partition("?")
	return HTTPRequestLine(method, path, query, protocol)


def parseHeader(line: bytes) -> tuple[str, str] | None:
	# Header values are expected to be ASCII, latin-1 never fails
	name, sep, value = line.decode("latin-1").partition(":")
	return (headername(name.strip()), value.strip()) if sep else None


# -----------------------------------------------------------------------------
#
# PARSER
#
# -----------------------------------------------------------------------------


class ParserState(Enum):
	RequestLine = 0
	Headers = 1
	Body = 2


class HTTPParser:
	"""A stateful HTTP request parser, yielding atoms as the data is fed:
	the request line, the headers, then the request itself once its body
	(if any) is read. Request bodies are skipped rather than buffered.
	Malformed input yields `BadFormat` and stops."""

	def __init__(self) -> None:
		self.lines: LineParser = LineParser()
		self.state: ParserState = ParserState.RequestLine
		self.requestLine: HTTPRequestLine | None = None
		self.headers: dict[str, str] = {}
		self.contentLength: int = 0
		# Body bytes still to be read, they are discarded as they come
		self.remaining: int = 0

	def reset(self) -> "HTTPParser":
		self.lines.reset()
		self.state = ParserState.RequestLine
		self.requestLine = None
		self.headers = {}
		self.contentLength = 0
		self.remaining = 0
		return self

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		offset: int = 0
		size: int = len(chunk)
		while offset < size:
			if self.state is ParserState.Body:
				read = min(size - offset, self.remaining)
				self.remaining -= read
				offset += read
				if not self.remaining:
					yield self.request(HTTPBodyBlob())
				continue
			try:
				line, read = self.lines.feed(chunk, offset)
			except LineTooLong:
				self.reset()
				yield HTTPProcessingStatus.BadFormat
				return
			offset += read
			if line is None:
				continue
			elif self.state is ParserState.RequestLine:
				# NOTE: Empty lines before a request line are ignored, as
				# RFC 9112 recommends.
				if not line:
					continue
				self.requestLine = parseRequestLine(line)
				if self.requestLine is None:
					self.reset()
					yield HTTPProcessingStatus.BadFormat
					return
				self.state = ParserState.Headers
				yield self.requestLine
			elif line:
				if header := parseHeader(line):
					self.headers[header[0]] = header[1]
			else:
				# An empty line denotes the end of headers
				yield HTTPHeaders(self.headers, self.headers.get("Content-Type"))
				atom = self.endHeaders()
				yield atom
				if atom is HTTPProcessingStatus.BadFormat:
					return

	def endHeaders(self) -> HTTPAtom:
		"""Decides how the body is read once the headers are parsed."""
		if "Transfer-Encoding" in self.headers:
			# Chunked request bodies are not supported
			self.reset()
			return HTTPProcessingStatus.BadFormat
		try:
			self.contentLength = int(self.headers.get("Content-Length", 0))
		except ValueError:
			self.reset()
			return HTTPProcessingStatus.BadFormat
		if self.contentLength < 0:
			self.reset()
			return HTTPProcessingStatus.BadFormat
		elif self.contentLength:
			self.state = ParserState.Body
			self.remaining = self.contentLength
			return HTTPProcessingStatus.Body
		else:
			# Without a length, a request has no body (RFC 9112 §6.3)
			return self.request(HTTPBodyBlob())

	def request(self, body: HTTPBodyBlob) -> HTTPRequest:
		"""Creates the request for the current line and headers, and gets
		ready to parse the next one."""
		line = self.requestLine
		if line is None:
			raise RuntimeError("Request created without a request line")
		headers = HTTPHeaders(
			self.headers, self.headers.get("Content-Type"), self.contentLength or None
		)
		self.reset()
		return HTTPRequest(
			method=line.method,
			path=line.path,
			query=line.query,
			headers=headers,
			protocol=line.protocol,
			body=body,
		)


# EOF
