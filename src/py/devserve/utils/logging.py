import os
import sys
import time
from contextvars import ContextVar
from enum import Enum
from typing import Any, NamedTuple, TextIO, TypeAlias

from .term import Term

TPrimitive: TypeAlias = bool | int | float | str | bytes | None

LogOrigin: ContextVar[str] = ContextVar("LogOrigin", default="devserve")


class LogType(Enum):
	Message = 0
	Event = 20


class LogLevel(Enum):
	Debug = 0
	Info = 10
	Warning = 30
	Error = 40  # A managed error
	Exception = 50  # An un-managed error


LOG_LEVEL_COLOR: dict[LogLevel, int] = {
	LogLevel.Debug: 31,
	LogLevel.Info: 75,
	LogLevel.Warning: 202,
	LogLevel.Error: 160,
	LogLevel.Exception: 124,
}

# Messages below that level are not sent, `DEVSERVE_LOG_LEVEL=Debug` shows
# port retries and interface discovery.
LOG_LEVEL: LogLevel = LogLevel.__members__.get(
	os.getenv("DEVSERVE_LOG_LEVEL", "Info").capitalize(), LogLevel.Info
)


class LogEntry(NamedTuple):
	origin: str
	time: float
	type: LogType = LogType.Message
	level: LogLevel = LogLevel.Info
	message: str | None = None
	name: str | None = None
	value: TPrimitive | None = None
	context: dict[str, TPrimitive] | None = None
	icon: str | None = None


def err() -> TextIO:
	# NOTE: Looked up on each call so that redirections of stderr apply
	return sys.stderr


def formatData(value: Any) -> str:
	if value is None or value == () or value == [] or value == {}:
		return "◌"
	elif isinstance(value, dict):
		return " ".join(
			f"{Term.BOLD}{k}{Term.NORMAL}={formatData(v)}" for k, v in value.items()
		)
	elif isinstance(value, (list, tuple)):
		return ",".join(formatData(v) for v in value)
	elif isinstance(value, str):
		return repr(value) if " " in value else value
	elif isinstance(value, bool):
		return "✓" if value else "✗"
	elif isinstance(value, float):
		return f"{value:0.2f}"
	else:
		return str(value)


def send(entry: LogEntry) -> LogEntry:
	if entry.level.value < LOG_LEVEL.value:
		return entry
	clr: str = Term.Color(LOG_LEVEL_COLOR[entry.level])
	prefix: str = f"{clr}{Term.BOLD}[{entry.origin}]"
	if entry.type == LogType.Event:
		text = f"{prefix} {entry.name}{Term.RESET} {formatData(entry.value)}"
	else:
		icon: str = f" {entry.icon}" if entry.icon else ""
		text = f"{prefix}{Term.RESET}{icon} {entry.message}"
	out = err()
	out.write(f"{text} {formatData(entry.context)}{Term.RESET}\n")
	out.flush()
	return entry


def log(
	level: LogLevel,
	message: str,
	*,
	value: TPrimitive = None,
	origin: str | None = None,
	icon: str | None = None,
	context: dict[str, TPrimitive],
) -> LogEntry:
	return send(
		LogEntry(
			origin=origin or LogOrigin.get(),
			time=time.time(),
			level=level,
			message=message,
			value=value,
			context=context,
			icon=icon,
		)
	)


def debug(message: str, *, icon: str | None = None, **context: TPrimitive) -> LogEntry:
	return log(LogLevel.Debug, message, icon=icon, context=context)


def info(message: str, *, icon: str | None = None, **context: TPrimitive) -> LogEntry:
	return log(LogLevel.Info, message, icon=icon, context=context)


def warning(
	message: str, *, icon: str | None = None, **context: TPrimitive
) -> LogEntry:
	return log(LogLevel.Warning, message, icon=icon, context=context)


def error(
	message: str,
	code: int | str | None,
	*,
	icon: str | None = None,
	**context: TPrimitive,
) -> LogEntry:
	"""Logs a managed error, `code` identifying its kind."""
	return log(
		LogLevel.Error,
		f"[{code}] {message}" if code else message,
		value=code,
		icon=icon,
		context=context,
	)


def event(name: str, value: Any = None, **context: TPrimitive) -> LogEntry:
	"""Logs a lifecycle event, like the server shutting down."""
	return send(
		LogEntry(
			origin=LogOrigin.get(),
			time=time.time(),
			type=LogType.Event,
			name=name,
			value=value,
			context=context,
		)
	)


def exception(
	exception: BaseException,
	message: str | None = None,
) -> BaseException:
	"""Logs an unexpected exception with its traceback. Returns the
	exception so that it can be used as `raise exception(e)`."""
	try:
		stream = err()
		label: str = f"[{exception.__class__.__name__}] {exception}"
		stream.write(f"!!! EXCP {f'{message}: {label}' if message else label}\n")
		tb = exception.__traceback__
		while tb:
			code = tb.tb_frame.f_code
			stream.write(
				f"... in {code.co_name:15s} at {tb.tb_lineno:4d} in {code.co_filename}\n",
			)
			tb = tb.tb_next
		stream.flush()
	except Exception:  # nosec: B110
		# This is called from exception handlers, it must never raise
		pass
	return exception


# -----------------------------------------------------------------------------
#
# REQUEST LOG
#
# -----------------------------------------------------------------------------

# Checked in order: Edge user agents mention Chrome and so report as Chrome,
# Chrome ones mention Safari.
BROWSERS: tuple[tuple[str, str], ...] = (
	("Chrome", "Chrome"),
	("Safari", "Safari"),
	("Firefox", "Firefox"),
	("Edge", "Edge"),
	("MSIE", "Internet Explorer"),
)


def browser(userAgent: str | None) -> str:
	"""Returns a short browser name for the given user agent string."""
	if userAgent:
		for needle, name in BROWSERS:
			if needle in userAgent:
				return name
	return "Undefined"


def statusColor(status: int) -> int:
	return Term.RED if status >= 400 else Term.BLUE if status >= 300 else Term.GREEN


def formatRequest(userAgent: str | None, method: str, status: int, path: str) -> str:
	name = Term.Paint(f"({browser(userAgent)})", Term.CYAN)
	return f"[{name} {Term.Paint(method, Term.MAGENTA)}/{Term.Paint(str(status), statusColor(status))}] {Term.UNDERLINE}{path}{Term.RESET}"


def logRequest(
	userAgent: str | None,
	method: str,
	status: int,
	path: str,
	*,
	stream: TextIO | None = None,
) -> str:
	"""The request log sink, called once for every completed request."""
	line = formatRequest(userAgent, method, status, path)
	out = stream or sys.stdout
	out.write(f"{line}\n")
	out.flush()
	return line


# EOF
