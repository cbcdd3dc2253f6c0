import asyncio
import errno
import os
import socket
import ssl
import threading
from contextlib import suppress
from dataclasses import dataclass
from signal import SIGINT, SIGTERM
from typing import Callable, Literal, NamedTuple, TypeVar

from .config import LOCALHOST, ServerConfig
from .http.model import (
	HTTPBodyWriter,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPResponse,
)
from .http.parser import HTTPParser
from .model import BindConflict, BindError, StreamError
from .services.files import FileService
from .utils.limits import LimitType, unlimit
from .utils.logging import debug, event, exception, info, logRequest, warning

T = TypeVar("T")

MAX_PORT: int = 65535

# A public address, only used to find which interface routes outside. No
# packet is sent as connecting a UDP socket doesn't send anything.
ROUTE_PROBE: tuple[str, int] = ("8.8.8.8", 80)


class ServerOptions(NamedTuple):
	backlog: int = 1_024
	readsize: int = 64_000
	# Idle time after which a persistent connection is closed
	keepalive: float = 60.0


OPTIONS: ServerOptions = ServerOptions()

SERVER_ERROR: bytes = (
	b"HTTP/1.1 500 Internal Server Error\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 21\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Internal server error"
)

BAD_REQUEST: bytes = (
	b"HTTP/1.1 400 Bad Request\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 11\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Bad Request"
)

# -----------------------------------------------------------------------------
#
# ADDRESSES
#
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class BindAddress:
	"""An address to listen on. The port is updated while looking for a free
	one and stays as is once `bound`."""

	address: str
	port: int
	bound: bool = False

	def url(self, scheme: str = "http") -> str:
		return f"{scheme}://{self.address}:{self.port}"


def isInternal(address: str) -> bool:
	return address.startswith("127.") or address == "0.0.0.0"  # nosec: B104


def localAddresses() -> list[str]:
	"""Returns the non-internal IPv4 addresses of this machine, using the
	addresses the hostname resolves to and the address of the interface
	that routes outside."""
	found: list[str] = []
	try:
		for *_, sockaddr in socket.getaddrinfo(
			socket.gethostname(), None, socket.AF_INET, socket.SOCK_STREAM
		):
			found.append(str(sockaddr[0]))
	except OSError as e:
		debug("Could not resolve hostname addresses", Reason=str(e))
	try:
		with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
			s.connect(ROUTE_PROBE)
			found.append(str(s.getsockname()[0]))
	except OSError as e:
		debug("Could not find the routing interface", Reason=str(e))
	return [_ for i, _ in enumerate(found) if not isInternal(_) and _ not in found[:i]]


def bindAddresses(
	config: ServerConfig, discover: Callable[[], list[str]] = localAddresses
) -> list[BindAddress]:
	"""Returns the addresses to bind: localhost first, then every LAN
	address unless the server is local only."""
	addresses: list[str] = [LOCALHOST]
	if not config.localOnly:
		addresses += [_ for _ in discover() if _ not in addresses]
	return [BindAddress(_, config.port) for _ in addresses]


# -----------------------------------------------------------------------------
#
# PORTS
#
# -----------------------------------------------------------------------------


def bindSocket(address: str, port: int, backlog: int = OPTIONS.backlog) -> socket.socket:
	"""Creates a listening socket on the given address and port, raising
	`BindConflict` when the port is in use and `BindError` otherwise."""
	sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
	try:
		# NOTE: On Windows, SO_REUSEADDR allows binding a port in use
		if os.name != "nt":
			sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		sock.bind((address, port))
		sock.listen(backlog)
	except OSError as e:
		sock.close()
		if e.errno == errno.EADDRINUSE:
			raise BindConflict(address, port) from e
		raise BindError(f"Unable to bind to {address}:{port}: {e}") from e
	return sock


def findFreePort(
	address: str,
	port: int,
	attempt: Callable[[str, int], T],
) -> tuple[int, T]:
	"""Tries `attempt(address, port)` on increasing ports starting at `port`,
	until it doesn't raise a `BindConflict`. Returns the port and what the
	attempt returned."""
	while True:
		if port > MAX_PORT:
			raise BindError(f"No available port left on {address}")
		try:
			return port, attempt(address, port)
		except BindConflict:
			debug("Port in use, trying the next one", Address=address, Port=port)
			port += 1


# -----------------------------------------------------------------------------
#
# IO
#
# -----------------------------------------------------------------------------


class AIOStreamBodyWriter(HTTPBodyWriter):
	"""Specialized body writer to work with AIO stream writers, waiting
	for the transport to drain after each write."""

	__slots__ = ["writer"]

	def __init__(self, writer: asyncio.StreamWriter) -> None:
		super().__init__()
		self.writer: asyncio.StreamWriter = writer

	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool:
		if chunk:
			self.writer.write(chunk)
			await self.writer.drain()
			return True
		return False


# -----------------------------------------------------------------------------
#
# SERVER
#
# -----------------------------------------------------------------------------


def announce(config: ServerConfig, addresses: list[BindAddress]) -> None:
	urls = ", ".join(_.url(config.scheme) for _ in addresses)
	info(f"Serving {config.root} on [ {urls} ]", icon="🚀")


class ServerInstance:
	"""Owns the listeners bound for a configuration, from startup to
	shutdown."""

	def __init__(
		self,
		config: ServerConfig,
		*,
		service: FileService | None = None,
		context: ssl.SSLContext | None = None,
		options: ServerOptions = OPTIONS,
		onReady: Callable[[ServerConfig, list[BindAddress]], None] | None = announce,
		discover: Callable[[], list[str]] = localAddresses,
	) -> None:
		self.config: ServerConfig = config
		self.service: FileService = service or FileService(
			config.root,
			notFound=config.notFound,
			logger=logRequest if config.logRequests else None,
		)
		self.context: ssl.SSLContext | None = context
		self.options: ServerOptions = options
		self.onReady = onReady
		self.discover: Callable[[], list[str]] = discover
		self.addresses: list[BindAddress] = []
		self.servers: list[asyncio.Server] = []
		self.connections: set[asyncio.Task[None]] = set()
		self.stopped: asyncio.Event | None = None
		self.isReady: bool = False

	async def bind(self, address: BindAddress) -> BindAddress:
		"""Binds a listener on the address, looking for the first free port
		from the configured one, and starts accepting connections on it."""
		loop = asyncio.get_running_loop()
		# NOTE: Binding runs in the executor so that each address retries
		# independently.
		port, sock = await loop.run_in_executor(
			None, findFreePort, address.address, address.port, self.bindSocket
		)
		try:
			server = await asyncio.start_server(
				self.onConnection, sock=sock, ssl=self.context
			)
		except Exception:
			sock.close()
			raise
		self.servers.append(server)
		address.port = sock.getsockname()[1] if port == 0 else port
		address.bound = True
		return address

	def bindSocket(self, address: str, port: int) -> socket.socket:
		return bindSocket(address, port, self.options.backlog)

	async def start(self) -> list[BindAddress]:
		"""Binds every address concurrently and notifies readiness once all
		of them are listening."""
		self.stopped = asyncio.Event()
		self.addresses = bindAddresses(self.config, self.discover)
		results = await asyncio.gather(
			*(self.bind(_) for _ in self.addresses), return_exceptions=True
		)
		bound: list[BindAddress] = []
		failure: BaseException | None = None
		for address, result in zip(self.addresses, results):
			if isinstance(result, BindAddress):
				bound.append(result)
			elif (
				isinstance(result, BindError)
				and isinstance(result.__cause__, OSError)
				and result.__cause__.errno == errno.EADDRNOTAVAIL
			):
				# The interface went away since discovery
				warning("Address is not available", Address=address.address)
			elif isinstance(result, BaseException):
				failure = failure or result
		if failure or not bound:
			await self.close()
			raise failure or BindError("No address could be bound")
		self.addresses = bound
		self.ready()
		return bound

	def ready(self) -> None:
		if self.isReady:
			return
		self.isReady = True
		if self.onReady:
			self.onReady(self.config, self.addresses)

	def stop(self) -> None:
		"""Requests the server to stop, `serve` then closes every listener."""
		info("Server stopping…")
		if self.stopped:
			self.stopped.set()

	async def close(self) -> None:
		"""Closes every listener and aborts the open connections."""
		for server in self.servers:
			server.close()
		for task in self.connections:
			task.cancel()
		await asyncio.gather(*self.connections, return_exceptions=True)
		for server in self.servers:
			# Connections still in their TLS handshake are not tracked
			with suppress(asyncio.TimeoutError):
				await asyncio.wait_for(server.wait_closed(), timeout=1.0)
		self.servers.clear()

	async def serve(self) -> None:
		"""Main server coroutine, returns once the server is stopped."""
		await self.start()
		loop = asyncio.get_running_loop()
		# Signal handlers can only be set from the main thread
		handled: bool = threading.current_thread() is threading.main_thread()
		if handled:
			for sig in (SIGINT, SIGTERM):
				with suppress(NotImplementedError):
					loop.add_signal_handler(sig, self.stop)
		try:
			if self.stopped:
				await self.stopped.wait()
		finally:
			if handled:
				for sig in (SIGINT, SIGTERM):
					with suppress(NotImplementedError):
						loop.remove_signal_handler(sig)
			await self.close()

	async def onConnection(
		self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
	) -> None:
		"""Processes the requests of a connection, one after the other, until
		the connection closes."""
		task = asyncio.current_task()
		if task:
			self.connections.add(task)
		parser = HTTPParser()
		body_writer = AIOStreamBodyWriter(writer)
		keep_alive: bool = True
		try:
			while keep_alive and not body_writer.shouldClose:
				try:
					data = await asyncio.wait_for(
						reader.read(self.options.readsize),
						timeout=self.options.keepalive,
					)
				except asyncio.TimeoutError:
					break
				if not data:
					# A no-data means a close
					break
				for atom in parser.feed(data):
					if atom is HTTPProcessingStatus.BadFormat:
						await body_writer.write(BAD_REQUEST)
						keep_alive = False
						break
					elif isinstance(atom, HTTPRequest):
						keep_alive = keep_alive and atom.keepAlive
						await self.sendResponse(atom, body_writer, keepAlive=keep_alive)
						if body_writer.shouldClose:
							break
		except ConnectionError as e:
			debug("Client went away", Reason=str(e))
		except Exception as e:
			exception(e)
		finally:
			if task:
				self.connections.discard(task)
			writer.close()
			with suppress(Exception):
				await writer.wait_closed()

	async def sendResponse(
		self,
		request: HTTPRequest,
		writer: HTTPBodyWriter,
		*,
		keepAlive: bool = True,
	) -> HTTPResponse | None:
		"""Processes the request and sends the response using the given
		writer. The request is logged exactly once, whatever happens."""
		res: HTTPResponse | None = None
		status: int = 500
		sent: bool = False
		try:
			res = self.service.process(request)
			status = res.status
			has_body: bool = res.body is not None and status not in (204, 304)
			chunked: bool = False
			if has_body and not res.hasLength:
				if request.protocol == "HTTP/1.1":
					res.setHeader("Transfer-Encoding", "chunked")
					chunked = True
				else:
					# The end of the body is marked by closing the connection
					keepAlive = False
			res.setHeader("Connection", "keep-alive" if keepAlive else "close")
			writer.shouldClose = writer.shouldClose or not keepAlive
			await writer.write(res.head())
			sent = True
			if has_body and request.method != "HEAD":
				writer.prepare(res.transform, chunked=chunked)
				await writer.write(res.body)
				await writer.flush()
		except StreamError as e:
			# Headers are already sent, so all we can do is close
			warning("Response stream aborted", Method=request.method, Path=request.url, Reason=str(e))
			writer.shouldClose = True
		except ConnectionError as e:
			debug("Client closed the connection early", Reason=str(e))
			writer.shouldClose = True
		except Exception as e:
			exception(e)
			writer.shouldClose = True
			if not sent:
				with suppress(Exception):
					await writer.write(SERVER_ERROR)
		finally:
			if res:
				res.close()
			self.service.log(request, status)
		return res


def run(
	config: ServerConfig,
	*,
	options: ServerOptions = OPTIONS,
	onReady: Callable[[ServerConfig, list[BindAddress]], None] | None = announce,
) -> None:
	"""High level function to run the server until it's interrupted. Raises
	`ConfigurationError` or `BindError` when the server can't start."""
	config = config.validate()
	context = config.sslContext()
	unlimit(LimitType.Files)
	instance = ServerInstance(config, context=context, options=options, onReady=onReady)
	try:
		asyncio.run(instance.serve())
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


# EOF
