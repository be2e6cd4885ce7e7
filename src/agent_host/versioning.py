"""Semantic versions and npm-style version ranges.

Extensions declare their own version as a strict semantic version and their
dependencies as ranges. Supported range syntax:

- ``*``, ``x`` or an empty string match anything
- exact versions (``1.2.3``) and partial versions (``1.2`` means ``1.2.x``)
- comparators ``>``, ``>=``, ``<``, ``<=``, ``=``
- caret (``^1.2.3``) and tilde (``~1.2.3``) ranges
- hyphen ranges (``1.0.0 - 2.0.0``)
- space separated comparators are ANDed, ``||`` separates alternatives

Versions may carry a leading ``v`` (``v1.2.3``). A prerelease only satisfies
a range when some comparator in the same alternative names a prerelease of
the same major.minor.patch, so ``2.0.0-rc.1`` does not satisfy ``^1.0.0``.
"""

import operator
import re
from typing import Callable, Optional

import semver

Comparator = tuple[Callable[[semver.Version, semver.Version], bool], semver.Version]

_OPERATORS = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
}
_COMPARATOR_RE = re.compile(r"^(>=|<=|>|<|=|\^|~)?\s*v?([0-9xX*][0-9A-Za-z.+\-*]*)$")
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_WILDCARDS = {"x", "X", "*"}
_LEADING_RE = re.compile(r"^\s*[=v]+")


def _clean(version: str) -> str:
    return _LEADING_RE.sub("", version).strip()


def is_valid_version(version: str) -> bool:
    """Check whether a string is a strict semantic version."""
    if not isinstance(version, str) or not version:
        return False
    return semver.Version.is_valid(_clean(version))


def parse_version(version: str) -> semver.Version:
    """Parse a strict semantic version, raising ValueError if malformed."""
    return semver.Version.parse(_clean(version))


def _parse_partial(text: str) -> tuple[semver.Version, int]:
    """
    Parse a possibly partial version.

    Returns:
        Tuple of (version with missing parts zeroed, number of given parts)
    """
    if semver.Version.is_valid(text):
        return semver.Version.parse(text), 3

    parts = text.split(".")
    if len(parts) > 3:
        raise ValueError(f"Invalid version in range: '{text}'")

    numbers: list[int] = []
    for part in parts:
        if part in _WILDCARDS:
            break
        if not part.isdigit():
            raise ValueError(f"Invalid version in range: '{text}'")
        numbers.append(int(part))

    precision = len(numbers)
    numbers.extend([0] * (3 - precision))
    return semver.Version(*numbers), precision


def _bump(version: semver.Version, precision: int) -> semver.Version:
    """Smallest version above every version sharing the first `precision` parts."""
    if precision <= 1:
        return version.bump_major()
    return version.bump_minor()


def _caret(version: semver.Version, precision: int) -> list[Comparator]:
    if version.major > 0 or precision <= 1:
        upper = version.bump_major()
    elif version.minor > 0 or precision == 2:
        upper = version.bump_minor()
    else:
        upper = version.bump_patch()
    return [(operator.ge, version), (operator.lt, upper)]


def _tilde(version: semver.Version, precision: int) -> list[Comparator]:
    upper = version.bump_major() if precision <= 1 else version.bump_minor()
    return [(operator.ge, version), (operator.lt, upper)]


def _parse_comparator(token: str) -> list[Comparator]:
    match = _COMPARATOR_RE.match(token)
    if not match:
        raise ValueError(f"Invalid range comparator: '{token}'")

    op, text = match.groups()
    if text in _WILDCARDS:
        return []

    version, precision = _parse_partial(text)
    if precision == 0:
        # "1.x" style wildcards below a bare operator collapse to "match all"
        return []

    if op == "^":
        return _caret(version, precision)
    if op == "~":
        return _tilde(version, precision)

    if precision == 3:
        return [(_OPERATORS[op or "="], version)]

    upper = _bump(version, precision)
    if op in (None, "="):
        return [(operator.ge, version), (operator.lt, upper)]
    if op == ">":
        return [(operator.ge, upper)]
    if op == "<=":
        return [(operator.lt, upper)]
    return [(_OPERATORS[op], version)]


def _parse_alternative(expr: str) -> list[Comparator]:
    hyphen = _HYPHEN_RE.match(expr)
    if hyphen:
        low, high = hyphen.groups()
        return _parse_comparator(f">={low}") + _parse_comparator(f"<={high}")

    # Allow "> 1.0.0" by gluing operators to their operand.
    expr = re.sub(r"(>=|<=|>|<|=|\^|~)\s+", r"\1", expr)
    comparators: list[Comparator] = []
    for token in expr.split():
        comparators.extend(_parse_comparator(token))
    return comparators


def parse_range(range_expr: str) -> list[list[Comparator]]:
    """
    Parse a version range into alternatives of ANDed comparators.

    Raises:
        ValueError: If the range cannot be parsed
    """
    if not isinstance(range_expr, str):
        raise ValueError(f"Version range must be a string, got {type(range_expr).__name__}")
    return [_parse_alternative(part.strip()) for part in range_expr.split("||")]


def is_valid_range(range_expr: str) -> bool:
    """Check whether a version range parses."""
    try:
        parse_range(range_expr)
    except ValueError:
        return False
    return True


def satisfies(version: str, range_expr: Optional[str]) -> bool:
    """
    Check whether a version satisfies a range.

    A missing range is satisfied by any version. An unparseable version
    never satisfies anything.
    """
    if range_expr is None:
        return True
    try:
        parsed = parse_version(version)
    except (TypeError, ValueError):
        return False

    for alternative in parse_range(range_expr):
        if not all(compare(parsed, bound) for compare, bound in alternative):
            continue
        if parsed.prerelease and not _admits_prerelease(parsed, alternative):
            continue
        return True
    return False


def _admits_prerelease(version: semver.Version, alternative: list[Comparator]) -> bool:
    release = (version.major, version.minor, version.patch)
    return any(
        bound.prerelease and (bound.major, bound.minor, bound.patch) == release
        for _, bound in alternative
    )
