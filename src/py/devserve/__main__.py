import argparse
import sys
from pathlib import Path

from . import __version__
from .config import PORT, ROOT, ServerConfig
from .model import BindError, ConfigurationError
from .server import run
from .utils.logging import error


def parser() -> argparse.ArgumentParser:
	res = argparse.ArgumentParser(
		prog="devserve",
		usage="%(prog)s [options] [directory]",
		description="Serves a local directory over HTTP, on localhost and on every LAN address",
	)
	res.add_argument(
		"directory",
		nargs="?",
		default=ROOT,
		help="the directory to serve (default: current directory)",
	)
	res.add_argument(
		"-p",
		"--port",
		type=int,
		default=PORT,
		help=f"the port to use when serving, the next free one is used when taken (default: {PORT})",
	)
	res.add_argument("-f", "--404", dest="notFound", metavar="FILE", help="show custom 404 page")
	res.add_argument(
		"-l",
		"--only-local",
		dest="localOnly",
		action="store_true",
		help="force to only serve on local device",
	)
	res.add_argument("--cert", metavar="FILE", help="TLS certificate, enables HTTPS")
	res.add_argument("--key", metavar="FILE", help="TLS private key, enables HTTPS")
	res.add_argument(
		"--http2",
		action="store_true",
		help="negotiate HTTP/2 over TLS, falling back to HTTP/1.1",
	)
	res.add_argument(
		"-q", "--quiet", action="store_true", help="do not log requests"
	)
	res.add_argument(
		"-v", "--version", action="version", version=f"%(prog)s {__version__}"
	)
	return res


def config(args: argparse.Namespace) -> ServerConfig:
	return ServerConfig(
		root=Path(args.directory),
		notFound=Path(args.notFound) if args.notFound else None,
		localOnly=args.localOnly,
		port=args.port,
		cert=Path(args.cert) if args.cert else None,
		key=Path(args.key) if args.key else None,
		http2=args.http2,
		logRequests=not args.quiet,
	)


def main(argv: list[str] | None = None) -> int:
	args = parser().parse_args(argv)
	try:
		run(config(args))
	except ConfigurationError as e:
		error(str(e), "CONFIG")
		return 2
	except BindError as e:
		error(str(e), "BIND")
		return 1
	return 0


if __name__ == "__main__":
	sys.exit(main())

# EOF
