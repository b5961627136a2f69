"""Tests for corpus discovery."""

import tempfile
from pathlib import Path

from scanner.discovery import (
    find_repo_root,
    is_candidate_file,
    is_excluded_dir,
    iter_files,
)


def _touch(root: Path, *names: str) -> None:
    for name in names:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("steps: []\n", encoding="utf-8")


class TestIterFiles:
    """Tests for iter_files."""

    def test_sorted_yaml_files(self):
        """Test only YAML files are yielded, in sorted order."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve()
            _touch(root, "b.yml", "a.yaml", "notes.md", "sub/c.YML")

            files = [p.relative_to(root).as_posix() for p in iter_files(root)]

            assert files == ["a.yaml", "b.yml", "sub/c.YML"]

    def test_excluded_directories(self):
        """Test VCS, dependency and build directories are skipped."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve()
            _touch(root, ".git/x.yml", "node_modules/y.yml", "pkg.egg-info/z.yml", "keep/w.yml")

            files = [p.name for p in iter_files(root)]

            assert files == ["w.yml"]

    def test_max_depth(self):
        """Test descending stops at max_depth."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve()
            _touch(root, "top.yml", "one/mid.yml", "one/two/deep.yml")

            files = [p.name for p in iter_files(root, max_depth=1)]

            assert files == ["mid.yml", "top.yml"]

    def test_custom_extensions(self):
        """Test a restricted extension set."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve()
            _touch(root, "a.yml", "b.yaml")

            assert [p.name for p in iter_files(root, include_ext={".yaml"})] == ["b.yaml"]


class TestCandidateFiles:
    """Tests for single-path filtering."""

    def test_is_excluded_dir(self):
        """Test exact names and suffix patterns."""
        assert is_excluded_dir("node_modules", {"node_modules"})
        assert is_excluded_dir("foo.egg-info", {"*.egg-info"})
        assert not is_excluded_dir("templates", {"node_modules", "*.egg-info"})

    def test_is_candidate_file(self):
        """Test extension, containment and excluded-directory checks."""
        root = Path("/repo")

        assert is_candidate_file(root / "templates" / "a.yml", root)
        assert not is_candidate_file(root / "README.md", root)
        assert not is_candidate_file(Path("/other/a.yml"), root)
        assert not is_candidate_file(root / ".git" / "a.yml", root)


class TestRepoRoot:
    """Tests for repository root helpers."""

    def test_find_repo_root(self):
        """Test walking up to the directory holding .git."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve() / "repo"
            (root / ".git").mkdir(parents=True)
            nested = root / "a" / "b"
            nested.mkdir(parents=True)

            assert find_repo_root(nested) == root
            assert find_repo_root(root) == root
