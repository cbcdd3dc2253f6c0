from enum import Enum
from typing import Callable

from ..utils.codec import BytesTransform, DeflateEncoder, GZipEncoder, IdemCodec


class Encoding(Enum):
	Identity = "identity"
	GZip = "gzip"
	Deflate = "deflate"


ENCODERS: dict[Encoding, Callable[[], BytesTransform]] = {
	Encoding.GZip: GZipEncoder,
	Encoding.Deflate: DeflateEncoder,
	Encoding.Identity: IdemCodec,
}

# NOTE: This is a plain substring match on the header, so a token like
# `x-gzip` or a `gzip;q=0` preference still selects gzip. Quality values
# are not honored.
PRIORITY: tuple[Encoding, ...] = (Encoding.GZip, Encoding.Deflate)


def choose(accepted: str | None) -> Encoding:
	"""Picks the encoding from the raw `Accept-Encoding` header value."""
	if accepted:
		for encoding in PRIORITY:
			if encoding.value in accepted:
				return encoding
	return Encoding.Identity


def negotiate(accepted: str | None) -> tuple[Encoding, BytesTransform]:
	"""Returns the chosen encoding along with a fresh transform that encodes
	the response body accordingly."""
	encoding = choose(accepted)
	return encoding, ENCODERS[encoding]()


# EOF
