"""Tests for semantic versions and version ranges."""

import pytest

from agent_host.versioning import (
    is_valid_range,
    is_valid_version,
    parse_range,
    satisfies,
)


class TestVersionValidation:
    """Tests for strict semantic version checks."""

    @pytest.mark.parametrize("version", ["1.0.0", "0.0.1", "10.20.30", "1.0.0-beta.1"])
    def test_valid_versions(self, version):
        assert is_valid_version(version) is True

    @pytest.mark.parametrize("version", ["", "1.0", "v1", "1.0.0.0", "latest"])
    def test_invalid_versions(self, version):
        assert is_valid_version(version) is False

    def test_non_string_is_invalid(self):
        assert is_valid_version(None) is False


class TestRangeParsing:
    """Tests for range syntax acceptance."""

    @pytest.mark.parametrize(
        "expr",
        ["*", "", "1.2.3", "^1.2.3", "~1.2", ">=1.0.0 <2.0.0", "1.0.0 - 2.0.0", "<1 || >=3", "1.x"],
    )
    def test_accepts_supported_syntax(self, expr):
        assert is_valid_range(expr) is True

    @pytest.mark.parametrize("expr", ["banana", "^^1.0.0", ">=1.0.0.0.0", "1.a.0"])
    def test_rejects_garbage(self, expr):
        assert is_valid_range(expr) is False

    def test_alternatives_are_split(self):
        assert len(parse_range("^1.0.0 || ^2.0.0")) == 2

    def test_non_string_raises(self):
        with pytest.raises(ValueError):
            parse_range(1)


class TestSatisfies:
    """Tests for range matching."""

    def test_caret_allows_minor_and_patch(self):
        assert satisfies("1.9.4", "^1.2.0") is True
        assert satisfies("1.1.9", "^1.2.0") is False
        assert satisfies("2.0.0", "^1.2.0") is False

    def test_caret_on_zero_major_locks_minor(self):
        assert satisfies("0.2.9", "^0.2.3") is True
        assert satisfies("0.3.0", "^0.2.3") is False

    def test_tilde_allows_patch_only(self):
        assert satisfies("1.2.9", "~1.2.3") is True
        assert satisfies("1.3.0", "~1.2.3") is False

    def test_partial_version_is_a_wildcard(self):
        assert satisfies("1.2.7", "1.2") is True
        assert satisfies("1.3.0", "1.2") is False
        assert satisfies("1.99.0", "1.x") is True

    def test_partial_comparators(self):
        assert satisfies("1.2.9", ">1.2") is False
        assert satisfies("1.3.0", ">1.2") is True
        assert satisfies("1.2.9", "<=1.2") is True

    def test_and_of_comparators(self):
        assert satisfies("1.5.0", ">=1.0.0 <2.0.0") is True
        assert satisfies("2.0.0", ">=1.0.0 <2.0.0") is False

    def test_spaced_operator(self):
        assert satisfies("1.5.0", ">= 1.0.0") is True

    def test_hyphen_range_is_inclusive(self):
        assert satisfies("2.0.0", "1.0.0 - 2.0.0") is True
        assert satisfies("2.0.1", "1.0.0 - 2.0.0") is False

    def test_alternatives(self):
        assert satisfies("0.5.0", "<1.0.0 || >=3.0.0") is True
        assert satisfies("2.0.0", "<1.0.0 || >=3.0.0") is False

    def test_wildcard_and_missing_range(self):
        assert satisfies("3.1.4", "*") is True
        assert satisfies("3.1.4", None) is True

    def test_exact_version(self):
        assert satisfies("1.2.3", "1.2.3") is True
        assert satisfies("1.2.4", "=1.2.3") is False

    def test_invalid_version_never_satisfies(self):
        assert satisfies("not-a-version", "*") is False

    def test_leading_v_is_accepted(self):
        assert is_valid_version("v1.0.0") is True
        assert satisfies("v1.4.0", "^1.0.0") is True


class TestPrereleaseMatching:
    """A prerelease only matches when its own release line is named."""

    @pytest.mark.parametrize(
        "version,expr",
        [
            ("2.0.0-beta.1", "^1.0.0"),
            ("2.0.0-rc.1", "<2.0.0"),
            ("1.5.0-beta.1", ">=1.0.0"),
            ("1.5.0-beta.1", "*"),
            ("1.2.4-alpha", ">1.2.3-alpha"),
        ],
    )
    def test_prerelease_excluded(self, version, expr):
        assert satisfies(version, expr) is False

    @pytest.mark.parametrize(
        "version,expr",
        [
            ("1.2.3-beta.2", ">=1.2.3-beta.1"),
            ("1.2.3-rc.1", "^1.2.3-alpha"),
            ("1.0.0-beta.1", "1.0.0-beta.1"),
            ("3.0.0-rc.1", "<1.0.0 || >=3.0.0-rc.0"),
        ],
    )
    def test_prerelease_on_named_release_line(self, version, expr):
        assert satisfies(version, expr) is True

    def test_prerelease_below_named_prerelease(self):
        assert satisfies("1.2.3-alpha", ">=1.2.3-beta") is False
