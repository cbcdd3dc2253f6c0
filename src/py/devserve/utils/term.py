from typing import ClassVar
import os

# SEE: https://no-color.org/
NO_COLOR: bool = "NO_COLOR" in os.environ
FORCE_COLOR: bool = "FORCE_COLOR" in os.environ
COLOR: bool = FORCE_COLOR or NO_COLOR is False


class Term:
	BOLD: ClassVar[str] = "\033[1m" if COLOR else ""
	NORMAL: ClassVar[str] = "\033[0m" if COLOR else ""
	RESET: ClassVar[str] = "\033[0m" if COLOR else ""
	UNDERLINE: ClassVar[str] = "\033[4m" if COLOR else ""

	# Basic ANSI colors, matching what terminals show for the named colors
	RED: ClassVar[int] = 31
	GREEN: ClassVar[int] = 32
	BLUE: ClassVar[int] = 34
	MAGENTA: ClassVar[int] = 35
	CYAN: ClassVar[int] = 36

	@staticmethod
	def Color(color: int, bold: bool = False) -> str:
		return f"\033[{'1' if bold else '0'};38;5;{color}m" if COLOR else ""

	@staticmethod
	def Basic(color: int) -> str:
		return f"\033[{color}m" if COLOR else ""

	@staticmethod
	def Paint(text: str, color: int) -> str:
		"""Wraps `text` in the given basic ANSI color."""
		return f"{Term.Basic(color)}{text}{Term.RESET}" if COLOR else text


# EOF
