import os
from pathlib import Path
from typing import NamedTuple

# NOTE: Served content is assumed not to change during a run, which is
# why it can be cached for a year. Clients still revalidate with the
# ETag when they reload.
CACHE_CONTROL: str = "public, max-age=31536000"


class Validation(NamedTuple):
	token: str
	isFresh: bool


def etag(stats: os.stat_result) -> str:
	"""Returns the validation token for a file, made out of its modification
	time (in milliseconds) and size. Two files with the same metadata share
	the same token, even if their content differs."""
	mtime: int = stats.st_mtime_ns // 1_000_000
	return f'"{mtime:x}-{stats.st_size:x}"'


def validate(path: Path | str, token: str | None) -> Validation:
	"""Computes the server token for `path` and tells if it matches the
	client's `token`. Raises `OSError` when the file can't be stat'ed."""
	server_token = etag(os.stat(path))
	return Validation(server_token, token is not None and server_token == token)


# EOF
