import asyncio
import gzip
import os
import zlib
from pathlib import Path

import pytest

from devserve.http.model import HTTPBodyFile, HTTPRequest, HTTPResponse
from devserve.services.files import FileService

from conftest import BufferWriter


def body(res: HTTPResponse) -> bytes:
	"""Writes the response body the way the server does, returning the
	encoded bytes."""
	writer = BufferWriter().prepare(res.transform)

	async def write() -> None:
		await writer.write(res.body)
		await writer.flush()

	asyncio.run(write())
	return bytes(writer.data)


def get(service: FileService, url: str, **headers: str) -> HTTPResponse:
	return service.process(
		HTTPRequest.Create(
			"GET", url, {k.replace("_", "-"): v for k, v in headers.items()}
		)
	)


@pytest.fixture
def service(site: Path, requests) -> FileService:
	return FileService(site, logger=lambda *args: requests.append(args))


def test_index(service: FileService):
	res = get(service, "/")
	assert res.status == 200
	assert res.getHeader("Content-Type") == "text/html"
	assert res.getHeader("Content-Length") == "2"
	assert res.getHeader("Content-Encoding") == "identity"
	assert res.getHeader("Cache-Control") == "public, max-age=31536000"
	assert res.getHeader("Vary") == "Accept-Encoding"
	assert res.getHeader("ETag")
	assert body(res) == b"hi"


def test_nested_index(service: FileService):
	res = get(service, "/docs/")
	assert body(res) == b"<h1>Docs</h1>"


def test_percent_encoded_path(service: FileService, site: Path):
	(site / "a file.txt").write_text("spaced")
	res = get(service, "/a%20file.txt?cache=bust")
	assert res.status == 200
	assert body(res) == b"spaced"


def test_missing_file(service: FileService):
	res = get(service, "/missing.txt")
	assert res.status == 404
	assert res.getHeader("Content-Type") == "text/plain; charset=utf-8"
	assert res.getHeader("ETag") is None
	assert body(res) == b"Cannot GET /missing.txt"
	assert res.getHeader("Content-Length") == str(len(b"Cannot GET /missing.txt"))


def test_missing_file_is_compressed_too(service: FileService):
	res = get(service, "/missing.txt", Accept_Encoding="gzip")
	assert res.status == 404
	assert res.getHeader("Content-Encoding") == "gzip"
	assert res.getHeader("Content-Length") is None
	assert gzip.decompress(body(res)) == b"Cannot GET /missing.txt"


def test_directory_without_slash_is_not_found(service: FileService, capsys):
	assert get(service, "/docs").status == 404
	assert get(service, "/index.html/nested").status == 404
	err = capsys.readouterr().err
	assert "Could not find resource" in err
	assert "EXCP" not in err


def test_not_modified(service: FileService):
	first = get(service, "/index.html")
	token = first.getHeader("ETag")
	first.close()
	assert token
	res = get(service, "/index.html", If_None_Match=token)
	assert res.status == 304
	assert res.body is None
	for name in ("Content-Type", "Content-Length", "Content-Encoding"):
		assert res.getHeader(name) is None


def test_changed_file_is_served_again(service: FileService, site: Path):
	first = get(service, "/index.html")
	token = first.getHeader("ETag")
	first.close()
	(site / "index.html").write_text("hello again")
	res = get(service, "/index.html", If_None_Match=token or "")
	assert res.status == 200
	assert body(res) == b"hello again"


def test_gzip(service: FileService, site: Path):
	res = get(service, "/big.txt", Accept_Encoding="gzip, deflate")
	assert res.status == 200
	assert res.getHeader("Content-Encoding") == "gzip"
	assert res.getHeader("Content-Length") is None
	assert res.getHeader("Content-Type") == "text/plain"
	assert gzip.decompress(body(res)) == (site / "big.txt").read_bytes()


def test_sniffed_content_type(service: FileService):
	res = get(service, "/logo")
	assert res.getHeader("Content-Type") == "image/png"
	res.close()
	res = get(service, "/notes")
	assert res.getHeader("Content-Type") == "text/plain"
	res.close()


@pytest.mark.parametrize(
	"url",
	[
		"/../../etc/passwd",
		"/%2e%2e/%2e%2e/etc/passwd",
		"/..%2f..%2f..%2fetc%2fpasswd",
		"/docs/../../secret.txt",
	],
)
def test_traversal_is_refused(site: Path, url: str):
	(site.parent / "secret.txt").write_text("TOP SECRET DATA")
	service = FileService(site / "docs", logger=None)
	assert service.resolvePath(url) is None
	res = get(service, url)
	assert res.status == 404
	assert b"TOP SECRET DATA" not in body(res)


def test_resolve_path(service: FileService, site: Path):
	assert service.resolvePath("/") == site / "index.html"
	assert service.resolvePath("/docs/") == site / "docs" / "index.html"
	assert service.resolvePath("/docs/../big.txt") == site / "big.txt"
	assert service.resolvePath("/../index.html") is None


def test_custom_not_found(site: Path):
	(site / "404.html").write_text("<h1>Nope</h1>")
	service = FileService(site, notFound=site / "404.html", logger=None)
	res = get(service, "/missing")
	assert res.status == 404
	assert res.getHeader("Content-Type") == "text/html"
	assert body(res) == b"<h1>Nope</h1>"


def test_custom_not_found_missing_falls_back(site: Path):
	service = FileService(site, notFound=site / "absent.html", logger=None)
	res = get(service, "/missing", Accept_Encoding="deflate")
	assert res.status == 404
	assert res.getHeader("Content-Encoding") == "deflate"
	assert zlib.decompress(body(res)) == b"Cannot GET /missing"


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs file permissions")
def test_unreadable_file_is_not_found(service: FileService, site: Path):
	secret = site / "locked.bin"
	secret.write_bytes(b"\x00" * 10)
	secret.chmod(0)
	try:
		assert get(service, "/locked.bin").status == 404
	finally:
		secret.chmod(0o644)


def test_file_is_opened_before_the_head_is_sent(service: FileService):
	res = get(service, "/big.txt")
	assert isinstance(res.body, HTTPBodyFile)
	assert not res.body.isClosed
	res.close()
	assert res.body.isClosed


def test_log(service: FileService, requests):
	req = HTTPRequest.Create("GET", "/missing?x=1", {"User-Agent": "curl/8.0"})
	res = service.process(req)
	service.log(req, res.status)
	assert requests == [("curl/8.0", "GET", 404, "/missing?x=1")]
