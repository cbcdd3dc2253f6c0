from enum import Enum
from typing import NamedTuple

try:
	import resource
except ImportError:
	# Not available on Windows, where limits are left as they are
	resource = None  # type: ignore[assignment]


class LimitType(Enum):
	Files = "RLIMIT_NOFILE"


# Darwin reports really high hard limits that lead to OverflowErrors, so
# we cap the targets.
REASONABLE_LIMITS: dict[LimitType, int] = {
	LimitType.Files: 10 * 10240,
}


class Limit(NamedTuple):
	type: LimitType
	soft: int
	hard: int


def limit(scope: LimitType) -> Limit:
	return Limit(scope, *resource.getrlimit(getattr(resource, scope.value)))


def unlimit(scope: LimitType, ratio: float = 1.0) -> int | bool:
	"""Raises the soft limit of `scope` towards its hard limit, so that many
	files can be streamed at once. Returns the new soft limit, or `False`
	when it could not be changed."""
	if resource is None:
		return False
	lm = limit(scope)
	if lm.soft == resource.RLIM_INFINITY:
		return lm.soft
	hard = lm.hard if lm.hard != resource.RLIM_INFINITY else REASONABLE_LIMITS[scope]
	target = min(REASONABLE_LIMITS[scope], int(lm.soft + ratio * (hard - lm.soft)))
	if target <= lm.soft:
		return lm.soft
	try:
		resource.setrlimit(getattr(resource, scope.value), (target, lm.hard))
	except (ValueError, OSError):
		return False
	return target


# EOF
