from pathlib import Path

# -----------------------------------------------------------------------------
#
# ERRORS
#
# -----------------------------------------------------------------------------


class DevServeError(Exception):
	"""Base class for the errors raised by the server."""


class NotFound(DevServeError):
	"""The requested resource is absent or cannot be read."""

	def __init__(self, path: Path | str, reason: BaseException | None = None):
		super().__init__(f"Could not find resource {path}")
		self.path: Path = Path(path)
		self.reason: BaseException | None = reason

	@property
	def isMissing(self) -> bool:
		"""Tells if the resource does not exist, as opposed to failing to be
		read. A directory where a file is expected counts as missing."""
		return self.reason is None or isinstance(
			self.reason, (FileNotFoundError, IsADirectoryError, NotADirectoryError)
		)


class ConfigurationError(DevServeError):
	"""Invalid configuration, detected before any listener is bound."""


class BindConflict(DevServeError):
	"""The port is already in use on the given address."""

	def __init__(self, address: str, port: int):
		super().__init__(f"Port {port} is already in use on {address}")
		self.address: str = address
		self.port: int = port


class BindError(DevServeError):
	"""A listener could not be bound for a reason other than a port conflict."""


class StreamError(DevServeError):
	"""The response stream was aborted after its head was sent."""


# EOF
