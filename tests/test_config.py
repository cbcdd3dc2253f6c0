from pathlib import Path

import pytest

from devserve.config import ServerConfig
from devserve.model import ConfigurationError


def test_validate_makes_paths_absolute(site: Path, monkeypatch):
	monkeypatch.chdir(site.parent)
	config = ServerConfig(root=Path(site.name), port=8080).validate()
	assert config.root.resolve() == site.resolve()
	assert config.root.is_absolute()
	assert config.scheme == "http"


@pytest.mark.parametrize(
	"changes",
	[
		{"root": Path("/nonexistent/devserve")},
		{"port": -1},
		{"port": 65536},
		{"cert": Path("cert.pem")},
		{"key": Path("key.pem")},
		{"cert": Path("/nonexistent/cert.pem"), "key": Path("/nonexistent/key.pem")},
		{"http2": True},
	],
)
def test_invalid(site: Path, changes):
	with pytest.raises(ConfigurationError):
		ServerConfig(root=site)._replace(**changes).validate()


def test_missing_not_found_page_only_warns(site: Path, capsys):
	config = ServerConfig(root=site, notFound=site / "404.html").validate()
	assert config.notFound == site / "404.html"
	assert "Custom 404 page does not exist" in capsys.readouterr().err


def test_secure(site: Path):
	(site / "cert.pem").write_text("not a certificate")
	(site / "key.pem").write_text("not a key")
	config = ServerConfig(
		root=site, cert=site / "cert.pem", key=site / "key.pem", http2=True
	).validate()
	assert config.isSecure
	assert config.scheme == "https"
	with pytest.raises(ConfigurationError):
		config.sslContext()


def test_plain_has_no_context(site: Path):
	assert ServerConfig(root=site).validate().sslContext() is None


# EOF
