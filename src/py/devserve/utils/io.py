DEFAULT_ENCODING: str = "utf8"
EOL: bytes = b"\r\n"

# Longest request or header line we accept, delimiter excluded
MAX_LINE: int = 8_192


class LineTooLong(ValueError):
	def __init__(self, limit: int):
		super().__init__(f"Line exceeds {limit} bytes")
		self.limit: int = limit


class LineParser:
	"""Accumulates chunks until an end-of-line delimiter is found. Lines
	longer than `limit` raise `LineTooLong`, so that a client can't make
	the buffer grow indefinitely."""

	__slots__ = ["pending", "eol", "limit", "scanned"]

	def __init__(self, eol: bytes = EOL, limit: int = MAX_LINE) -> None:
		self.pending: bytearray = bytearray()
		self.eol: bytes = eol
		self.limit: int = limit
		# Where to resume looking for the delimiter in `pending`
		self.scanned: int = 0

	def reset(self) -> "LineParser":
		self.pending.clear()
		self.scanned = 0
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bytes | None, int]:
		"""Returns the line (without its delimiter) and how many bytes of
		`chunk` were consumed from `start`. The line is `None` when the whole
		chunk was buffered without finding a delimiter."""
		before: int = len(self.pending)
		self.pending += chunk[start:]
		end: int = self.pending.find(self.eol, self.scanned)
		if end == -1:
			if len(self.pending) > self.limit + len(self.eol):
				raise LineTooLong(self.limit)
			# The delimiter may straddle two chunks
			self.scanned = max(0, len(self.pending) - len(self.eol) + 1)
			return None, len(chunk) - start
		if end > self.limit:
			raise LineTooLong(self.limit)
		line: bytes = bytes(self.pending[:end])
		self.reset()
		return line, end + len(self.eol) - before


# EOF
