"""Tests for hookwarden.activation: glob-based group activation."""

from unittest.mock import patch

from hookwarden.activation import is_group_active


class TestWildcard:
    """'*' is active everywhere without touching the filesystem."""

    def test_wildcard_on_missing_directory(self, tmp_path):
        assert is_group_active("*", tmp_path / "does-not-exist") is True

    def test_wildcard_skips_glob(self, tmp_path):
        with patch("hookwarden.activation.glob.iglob") as mock_glob:
            assert is_group_active("*", tmp_path)
        mock_glob.assert_not_called()


class TestGlobProbe:
    """Non-wildcard patterns need at least one matching path."""

    def test_exact_file(self, tmp_path):
        (tmp_path / "bun.lock").touch()
        assert is_group_active("bun.lock", tmp_path)

    def test_no_match(self, tmp_path):
        (tmp_path / "package.json").touch()
        assert not is_group_active("bun.lock", tmp_path)

    def test_empty_directory(self, tmp_path):
        assert not is_group_active("pyproject.toml", tmp_path)

    def test_hidden_directory(self, tmp_path):
        (tmp_path / ".jj").mkdir()
        assert is_group_active(".jj", tmp_path)

    def test_star_pattern_matches_top_level(self, tmp_path):
        (tmp_path / "app.test.ts").touch()
        assert is_group_active("*.test.ts", tmp_path)

    def test_star_pattern_does_not_descend(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.test.ts").touch()
        assert not is_group_active("*.test.ts", tmp_path)

    def test_double_star_descends(self, tmp_path):
        (tmp_path / "src" / "deep").mkdir(parents=True)
        (tmp_path / "src" / "deep" / "app.test.ts").touch()
        assert is_group_active("**/*.test.ts", tmp_path)

    def test_case_sensitive(self, tmp_path):
        (tmp_path / "Cargo.toml").touch()
        assert not is_group_active("cargo.toml", tmp_path)


class TestFailures:
    """Probe failures resolve to inactive, never raise."""

    def test_malformed_pattern(self, tmp_path):
        assert is_group_active("[invalid", tmp_path) is False

    def test_missing_directory(self, tmp_path):
        assert is_group_active("*.py", tmp_path / "gone") is False

    def test_absolute_pattern_inactive(self, tmp_path):
        """Only paths inside cwd count, even when the absolute path exists."""
        (tmp_path / "marker").touch()
        assert is_group_active(str(tmp_path / "marker"), tmp_path / "elsewhere") is False
        assert is_group_active(str(tmp_path / "marker"), tmp_path) is False

    def test_parent_pattern_inactive(self, tmp_path):
        (tmp_path / "marker").touch()
        (tmp_path / "repo").mkdir()
        assert is_group_active("../marker", tmp_path / "repo") is False
        assert is_group_active("../*", tmp_path / "repo") is False

    def test_os_error(self, tmp_path):
        with patch("hookwarden.activation.glob.iglob", side_effect=OSError("denied")):
            assert is_group_active("*.py", tmp_path) is False
