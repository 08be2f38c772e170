"""Tests for tree scanning and path validation."""

import pytest

from sitepull.exceptions import FileMissingError, PathTraversalError
from sitepull.services.manifest import resolve_within, scan_file_list
from sitepull.services.manifest._scanner import normalize_relative


class TestScanFileList:
    """Tests for scan_file_list."""

    def test_lists_files_sorted(self, site_root):
        paths = [e.path for e in scan_file_list(site_root)]
        assert paths == sorted(paths)
        assert "index.php" in paths
        assert "wp-content/uploads/2024/photo.jpg" in paths

    def test_skips_vcs_dirs(self, site_root):
        paths = [e.path for e in scan_file_list(site_root)]
        assert not any(p.startswith(".git/") for p in paths)

    def test_sizes(self, site_root):
        by_path = {e.path: e for e in scan_file_list(site_root)}
        assert by_path["wp-content/uploads/big.bin"].size == 5000
        assert by_path["wp-content/uploads/big.bin"].mtime > 0

    def test_skips_symlinks(self, site_root, tmp_path):
        outside = tmp_path / "secret.txt"
        outside.write_text("secret")
        (site_root / "link.txt").symlink_to(outside)
        paths = [e.path for e in scan_file_list(site_root)]
        assert "link.txt" not in paths

    def test_empty_root(self, tmp_path):
        assert scan_file_list(tmp_path) == []


class TestResolveWithin:
    """Tests for resolve_within."""

    def test_resolves(self, site_root):
        path = resolve_within(site_root, "wp-includes/version.php")
        assert path == (site_root / "wp-includes" / "version.php").resolve()

    def test_leading_slash_and_backslashes(self, site_root):
        path = resolve_within(site_root, "\\wp-includes\\version.php")
        assert path.name == "version.php"

    @pytest.mark.parametrize("bad", ["", "../etc/passwd", "wp-content/../../x", "/.."])
    def test_traversal_rejected(self, site_root, bad):
        with pytest.raises(PathTraversalError):
            resolve_within(site_root, bad)

    def test_symlink_escape_rejected(self, site_root, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_text("x")
        (site_root / "escape.txt").symlink_to(outside)
        with pytest.raises(PathTraversalError):
            resolve_within(site_root, "escape.txt")

    def test_missing(self, site_root):
        with pytest.raises(FileMissingError):
            resolve_within(site_root, "nope.txt")

    def test_directory_is_missing_file(self, site_root):
        with pytest.raises(FileMissingError):
            resolve_within(site_root, "wp-content")

    def test_normalize(self):
        assert normalize_relative("/a\\b/c") == "a/b/c"
