import ssl
from os import getenv
from pathlib import Path
from typing import NamedTuple

from .model import ConfigurationError
from .utils.logging import warning

PORT: int = int(getenv("DEVSERVE_PORT", 5000))

ROOT: str = getenv("DEVSERVE_ROOT", ".")

LOG_REQUESTS: bool = getenv("DEVSERVE_LOG_REQUESTS", "1") == "1"

# The address that is always served, LAN addresses are added unless the
# server is restricted to the local machine.
LOCALHOST: str = "127.0.0.1"


class ServerConfig(NamedTuple):
	"""The configuration consumed by the server, as built by the command line."""

	root: Path = Path(ROOT)
	notFound: Path | None = None
	localOnly: bool = False
	port: int = PORT
	cert: Path | None = None
	key: Path | None = None
	http2: bool = False
	logRequests: bool = LOG_REQUESTS

	@property
	def isSecure(self) -> bool:
		return self.cert is not None and self.key is not None

	@property
	def scheme(self) -> str:
		return "https" if self.isSecure else "http"

	def validate(self) -> "ServerConfig":
		"""Checks the configuration, raising `ConfigurationError` for problems
		that should prevent the server from starting. Returns a copy with
		absolute paths."""
		root = Path(self.root).absolute()
		if not root.is_dir():
			raise ConfigurationError(f"Root directory does not exist: {root}")
		if not (0 <= self.port <= 65535):
			raise ConfigurationError(f"Port must be between 0 and 65535, got {self.port}")
		if (self.cert is None) != (self.key is None):
			raise ConfigurationError(
				"Secure mode requires both a certificate and a key"
			)
		for name, path in (("Certificate", self.cert), ("Key", self.key)):
			if path is not None and not Path(path).is_file():
				raise ConfigurationError(f"{name} file does not exist: {path}")
		if self.http2 and not self.isSecure:
			raise ConfigurationError("HTTP/2 requires a certificate and a key")
		not_found: Path | None = None
		if self.notFound is not None:
			not_found = Path(self.notFound).absolute()
			if not not_found.is_file():
				# The page may be created later on, so we only warn
				warning("Custom 404 page does not exist", Path=str(not_found))
		return self._replace(root=root, notFound=not_found)

	def sslContext(self) -> ssl.SSLContext | None:
		"""Returns the TLS context for secure mode, or `None`."""
		if not self.isSecure:
			return None
		context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
		try:
			context.load_cert_chain(certfile=str(self.cert), keyfile=str(self.key))
		except (OSError, ssl.SSLError) as e:
			raise ConfigurationError(
				f"Could not load certificate {self.cert} with key {self.key}: {e}"
			) from e
		if self.http2:
			# Only HTTP/1.1 is spoken, so ALPN always lands on it
			warning("HTTP/2 is not available, falling back to HTTP/1.1")
			context.set_alpn_protocols(["http/1.1"])
		return context


# EOF
