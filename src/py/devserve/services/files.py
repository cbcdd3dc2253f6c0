import os
from pathlib import Path
from typing import Callable, TypeAlias
from urllib.parse import unquote

from ..http.cache import CACHE_CONTROL, validate
from ..http.encoding import ENCODERS, Encoding, negotiate
from ..http.model import HTTPBodyFile, HTTPRequest, HTTPResponse
from ..model import NotFound
from ..utils.codec import BytesTransform
from ..utils.files import MimeResolver
from ..utils.logging import exception, info, logRequest, warning

# The request log sink: user agent, method, status and URL
TRequestLogger: TypeAlias = Callable[[str | None, str, int, str], object]

INDEX: str = "index.html"
NOT_FOUND_CONTENT_TYPE: str = "text/plain; charset=utf-8"


class FileService:
	"""Serves the files of a local directory, with conditional caching,
	content encoding negotiation and a fallback for missing resources.

	Every request goes through the same steps: the URL is resolved to a
	path within the root, the client's ETag is checked (responding with
	`304` when it matches), and the file is otherwise streamed with its
	content type and encoding. Any failure along the way falls back to
	the custom 404 page, and then to a plain text `Cannot GET /url`."""

	def __init__(
		self,
		root: str | Path | None = None,
		*,
		notFound: str | Path | None = None,
		logger: TRequestLogger | None = logRequest,
	):
		self.root: Path = Path(os.path.normpath(Path(root or ".").absolute()))
		self.notFoundPath: Path | None = (
			Path(notFound).absolute() if notFound is not None else None
		)
		self.mime: MimeResolver = MimeResolver()
		self.logger: TRequestLogger | None = logger

	def resolvePath(self, path: str) -> Path | None:
		"""Maps the URL path to a local path, returning `None` when the
		result would be outside of the root."""
		local: str = unquote(path)
		if local.endswith("/") or local.endswith(os.sep):
			local += INDEX
		local = local.replace("/", os.sep).lstrip(os.sep)
		local_path = os.path.normpath(os.path.join(self.root, local))
		try:
			if os.path.commonpath([self.root, local_path]) != str(self.root):
				return None
		except ValueError:
			# Paths on different drives
			return None
		return Path(local_path)

	def process(self, request: HTTPRequest) -> HTTPResponse:
		"""Processes the request, returning a response. This never raises
		for per-request errors."""
		encoding, transform = negotiate(request.header("Accept-Encoding"))
		try:
			path = self.resolvePath(request.path)
			if path is None:
				raise NotFound(request.path, PermissionError("Outside of root"))
			try:
				token, is_fresh = validate(path, request.header("If-None-Match"))
			except (OSError, ValueError) as e:
				raise NotFound(path, e) from e
			if is_fresh:
				return request.notModified({"ETag": token})
			return self.respondFile(
				request,
				path,
				encoding,
				transform,
				headers={"ETag": token, "Cache-Control": CACHE_CONTROL},
			)
		except NotFound as e:
			return self.respondNotFound(request, e, encoding)

	def respondFile(
		self,
		request: HTTPRequest,
		path: Path,
		encoding: Encoding,
		transform: BytesTransform,
		*,
		status: int = 200,
		headers: dict[str, str] | None = None,
	) -> HTTPResponse:
		"""Responds with the contents of the file at `path`, which is opened
		right away. Raises `NotFound` when the file can't be read."""
		try:
			if not path.is_file():
				raise IsADirectoryError(f"Not a file: {path}")
			content_type = self.mime.resolve(path)
			body = HTTPBodyFile(path)
		except (OSError, ValueError) as e:
			raise NotFound(path, e) from e
		return request.respond(
			body,
			contentType=content_type,
			status=status,
			headers=self.encodingHeaders(encoding) | (headers or {}),
			transform=transform,
		)

	def respondNotFound(
		self, request: HTTPRequest, error: NotFound, encoding: Encoding
	) -> HTTPResponse:
		"""Responds with the custom 404 page, or with a plain text message
		when there's none. Both go through the negotiated encoding."""
		if error.isMissing:
			info("Could not find resource", Path=str(error.path))
		elif isinstance(error.reason, PermissionError):
			warning("Access denied to resource", Path=str(error.path))
		elif error.reason is not None:
			exception(error.reason, f"Could not read {error.path}")
		if self.notFoundPath is not None:
			try:
				return self.respondFile(
					request,
					self.notFoundPath,
					encoding,
					ENCODERS[encoding](),
					status=404,
				)
			except NotFound as e:
				warning(
					"Could not serve custom 404 page",
					Path=str(self.notFoundPath),
					Reason=str(e.reason),
				)
		return request.respond(
			f"Cannot {request.method} {request.url}",
			contentType=NOT_FOUND_CONTENT_TYPE,
			status=404,
			headers=self.encodingHeaders(encoding),
			transform=ENCODERS[encoding](),
		)

	def encodingHeaders(self, encoding: Encoding) -> dict[str, str]:
		# The same URL varies depending on the accepted encodings
		return {"Content-Encoding": encoding.value, "Vary": "Accept-Encoding"}

	def log(self, request: HTTPRequest, status: int) -> None:
		"""Sends the completed request to the request logger."""
		if self.logger:
			self.logger(request.header("User-Agent"), request.method, status, request.url)


# EOF
