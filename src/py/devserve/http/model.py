from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import (
	Any,
	BinaryIO,
	Literal,
	NamedTuple,
	TypeAlias,
	Union,
)

from mypy_extensions import mypyc_attr

from ..model import StreamError
from ..utils.codec import BytesTransform, ChunkedEncoder, IdemCodec
from ..utils.io import DEFAULT_ENCODING
from .status import HTTP_STATUS

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------

# Header names that don't follow the `Kebab-Case` convention
HEADER_NAMES: dict[str, str] = {"etag": "ETag", "te": "TE", "www-authenticate": "WWW-Authenticate"}


def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`, so that `content-type`
	and `CONTENT-TYPE` are both `Content-Type`."""
	key: str = name.lower()
	return HEADER_NAMES.get(key) or "-".join(_.capitalize() for _ in key.split("-"))


def isIdentity(transform: BytesTransform | None) -> bool:
	return transform is None or isinstance(transform, IdemCodec)


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	method: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Wraps HTTP headers, keeping the ones needed to process the body."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None


class HTTPProcessingStatus(Enum):
	"""What the parser reports besides the parsed atoms."""

	# Headers are parsed and a body is expected
	Body = 1
	BadFormat = 12


# What the parser yields
HTTPAtom: TypeAlias = Union[
	HTTPRequestLine,
	HTTPHeaders,
	HTTPProcessingStatus,
	"HTTPRequest",
]

# -----------------------------------------------------------------------------
#
# BODY
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	"""A body held in memory."""

	payload: bytes = b""
	length: int = 0

	@staticmethod
	def FromBytes(data: bytes) -> "HTTPBodyBlob":
		return HTTPBodyBlob(payload=data, length=len(data))

	@property
	def raw(self) -> bytes:
		return self.payload


class HTTPBodyFile:
	"""A body streamed from a file. The file is opened as the body is
	created so that an unreadable file is detected before the response
	head goes out."""

	__slots__ = ["path", "file", "length"]

	def __init__(self, path: Path, file: BinaryIO | None = None) -> None:
		self.path: Path = path
		self.file: BinaryIO = file if file is not None else open(path, "rb")
		try:
			self.length: int = self.path.stat().st_size
		except OSError:
			self.file.close()
			raise

	@property
	def isClosed(self) -> bool:
		return self.file.closed

	def close(self) -> None:
		self.file.close()

	def __repr__(self) -> str:
		return f"HTTPBodyFile({self.path})"


THTTPBody: TypeAlias = HTTPBodyBlob | HTTPBodyFile

# -----------------------------------------------------------------------------
#
# BODY WRITER
#
# -----------------------------------------------------------------------------


@mypyc_attr(allow_interpreted_subclasses=True)
class HTTPBodyWriter(ABC):
	"""Writes response bodies through the content encoding transform, then
	through the chunked framing when the length isn't known upfront.
	Subclasses implement `_writeBytes` for their transport."""

	__slots__ = ["transform", "framing", "shouldClose"]

	def __init__(self, transform: BytesTransform | None = None) -> None:
		self.transform: BytesTransform | None = transform
		self.framing: ChunkedEncoder | None = None
		# Set once the connection can't be reused after the current response
		self.shouldClose: bool = False

	def prepare(
		self, transform: BytesTransform | None, *, chunked: bool = False
	) -> "HTTPBodyWriter":
		self.transform = None if isIdentity(transform) else transform
		self.framing = ChunkedEncoder() if chunked else None
		return self

	async def write(self, body: THTTPBody | bytes | None) -> bool:
		"""Writes the body. Raw bytes go out as they are, bypassing the
		transform and the framing, which is how the head is sent."""
		if body is None:
			return True
		elif isinstance(body, bytes):
			return await self._writeBytes(body)
		elif isinstance(body, HTTPBodyFile):
			return await self._writeFile(body)
		elif isinstance(body, HTTPBodyBlob):
			return await self._writeChunk(body.payload)
		else:
			raise ValueError(f"Unsupported body format: {body}")

	async def flush(self) -> bool:
		"""Ends the body: whatever the transform still holds is written,
		followed by the last chunk."""
		tail = self.transform.flush() if self.transform else None
		if tail:
			await self._frame(tail)
		if self.framing:
			await self._writeBytes(self.framing.flush() or None)
		return True

	async def _writeFile(self, body: HTTPBodyFile, size: int = 64_000) -> bool:
		try:
			while chunk := body.file.read(size):
				await self._writeChunk(chunk, True)
		except OSError as e:
			# Read errors and clients going away both land here
			raise StreamError(f"Stream of {body.path} aborted: {e}") from e
		finally:
			body.close()
		return True

	async def _writeChunk(self, chunk: bytes, more: bool = False) -> bool:
		encoded = self.transform.feed(chunk, more) if self.transform else chunk
		return await self._frame(encoded) if encoded else False

	async def _frame(self, data: bytes) -> bool:
		return await self._writeBytes(
			(self.framing.feed(data) if self.framing else data) or None, True
		)

	@abstractmethod
	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUEST
#
# -----------------------------------------------------------------------------


class HTTPRequest:
	"""An HTTP request, which is also a factory for its responses."""

	__slots__ = ["protocol", "method", "path", "query", "_headers", "_body"]

	def __init__(
		self,
		method: str,
		path: str,
		query: str | None,
		headers: HTTPHeaders,
		body: HTTPBodyBlob | None = None,
		protocol: str = "HTTP/1.1",
	):
		self.method: str = method
		self.path: str = path
		self.query: str | None = query
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers
		self._body: HTTPBodyBlob | None = body

	@staticmethod
	def Create(
		method: str = "GET",
		url: str = "/",
		headers: dict[str, str] | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPRequest":
		"""Creates a request from a URL, normalizing the header names the
		way the parser does."""
		path, _, query = url.partition("?")
		return HTTPRequest(
			method,
			path,
			query,
			HTTPHeaders({headername(k): v for k, v in (headers or {}).items()}),
			protocol=protocol,
		)

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	@property
	def url(self) -> str:
		"""The request target, as sent by the client."""
		return f"{self.path}?{self.query}" if self.query else self.path

	@property
	def body(self) -> HTTPBodyBlob | None:
		return self._body

	@property
	def keepAlive(self) -> bool:
		if self.protocol == "HTTP/1.0":
			return False
		return (self.header("Connection") or "").lower() != "close"

	def header(self, name: str) -> str | None:
		return self._headers.headers.get(headername(name))

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		transform: BytesTransform | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			content,
			contentType=contentType,
			contentLength=contentLength,
			headers=headers,
			status=status,
			protocol=self.protocol,
			transform=transform,
		)

	def notModified(self, headers: dict[str, str] | None = None) -> "HTTPResponse":
		return self.respond(status=304, headers=headers)

	def __str__(self) -> str:
		return f"Request({self.method} {self.url} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	__slots__ = ["protocol", "status", "message", "headers", "body", "transform"]

	@staticmethod
	def Body(content: Any) -> THTTPBody | None:
		"""Wraps the content as a body, text being encoded as UTF-8."""
		if content is None or isinstance(content, (HTTPBodyBlob, HTTPBodyFile)):
			return content
		elif isinstance(content, str):
			return HTTPBodyBlob.FromBytes(content.encode(DEFAULT_ENCODING))
		elif isinstance(content, bytes):
			return HTTPBodyBlob.FromBytes(content)
		elif isinstance(content, Path):
			return HTTPBodyFile(content.absolute())
		else:
			raise ValueError(f"Unsupported content {type(content)}:{content}")

	@staticmethod
	def Create(
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
		transform: BytesTransform | None = None,
	) -> "HTTPResponse":
		"""Creates a response. The `Content-Length` is only set when the body
		goes out as is: an encoded body's length is only known once it's
		written."""
		body = HTTPResponse.Body(content)
		identity: bool = isIdentity(transform)
		if not identity:
			contentLength = None
		elif contentLength is None and body is not None:
			contentLength = body.length
		res_headers: dict[str, str] = {
			headername(k): v for k, v in (headers or {}).items()
		}
		if contentType is not None:
			res_headers["Content-Type"] = contentType
		if contentLength is not None:
			res_headers["Content-Length"] = str(contentLength)
		return HTTPResponse(
			protocol,
			status,
			message,
			HTTPHeaders(res_headers, contentType, contentLength),
			body,
			None if identity else transform,
		)

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: THTTPBody | None = None,
		transform: BytesTransform | None = None,
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str = message or HTTP_STATUS.get(status, "Unknown status")
		self.headers: HTTPHeaders = headers
		self.body: THTTPBody | None = body
		# Content encoding applied to the body as it's written
		self.transform: BytesTransform | None = transform

	@property
	def hasLength(self) -> bool:
		return "Content-Length" in self.headers.headers

	def getHeader(self, name: str) -> str | None:
		return self.headers.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		"""Sets the header, removing it when the value is `None`."""
		if value is None:
			self.headers.headers.pop(headername(name), None)
		else:
			self.headers.headers[headername(name)] = str(value)
		return self

	def head(self) -> bytes:
		"""Serializes the status line and headers."""
		lines: list[str] = [f"{self.protocol} {self.status} {self.message}"]
		lines += [f"{k}: {v}" for k, v in self.headers.headers.items()]
		return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

	def close(self) -> None:
		if isinstance(self.body, HTTPBodyFile):
			self.body.close()

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers} {self.body})"


# EOF
