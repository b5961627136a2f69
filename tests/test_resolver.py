"""Tests for template reference resolution."""

import tempfile
from pathlib import Path

import pytest

from scanner.discovery import find_repo_root
from scanner.resolver import PathResolver, split_reference


class TestSplitReference:
    """Tests for splitting path and alias."""

    def test_no_alias(self):
        """Test a plain path has no alias."""
        assert split_reference("steps/a.yml") == ("steps/a.yml", None)

    def test_splits_on_last_at(self):
        """Test only the last @ separates the alias."""
        assert split_reference("weird@dir/a.yml@templates") == ("weird@dir/a.yml", "templates")

    def test_trailing_at_is_empty_alias(self):
        """Test a trailing @ gives an empty alias."""
        assert split_reference("a.yml@") == ("a.yml", "")


class TestLocalResolution:
    """Tests for references inside the current repository."""

    def test_relative_to_source_directory(self, repos):
        """Test a relative path joins the referencing file's directory."""
        resolved = PathResolver().resolve("../templates/local-template.yml", repos.pipeline)

        assert resolved.path == repos.local_template
        assert resolved.repository is None
        assert not resolved.is_unresolved_alias

    def test_leading_slash_is_repo_root_relative(self, repos):
        """Test /path joins the directory holding .git."""
        resolved = PathResolver().resolve("/templates/local-template.yml", repos.pipeline)
        assert resolved.path == repos.local_template

    def test_self_alias_is_local(self, repos):
        """Test @self behaves like no alias."""
        resolved = PathResolver().resolve("/templates/local-template.yml@self", repos.pipeline, {})

        assert resolved.path == repos.local_template
        assert resolved.repository is None
        assert not resolved.is_cross_repository

    def test_root_and_relative_agree_at_repo_root(self, repos):
        """Test rel and /rel match for a file at the repository root."""
        source = repos.main / "azure-pipelines.yml"
        resolver = PathResolver()

        assert resolver.resolve("rel/path.yml", source).path == resolver.resolve("/rel/path.yml", source).path

    def test_target_existence_not_checked(self, repos):
        """Test missing targets still resolve to a path."""
        resolved = PathResolver().resolve("nope/missing.yml", repos.pipeline)
        assert resolved.path == repos.main / "pipelines" / "nope" / "missing.yml"

    def test_backslashes_normalized(self, repos):
        """Test Windows-style separators resolve like forward slashes."""
        resolved = PathResolver().resolve("..\\templates\\local-template.yml", repos.pipeline)
        assert resolved.path == repos.local_template

    def test_empty_reference(self, repos):
        """Test an empty reference has no result."""
        assert PathResolver().resolve("   ", repos.pipeline) is None

    def test_no_marker_falls_back_to_source_directory(self):
        """Test repo root falls back to the file's directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            source_dir = Path(tmpdir).resolve() / "a" / "b"
            source_dir.mkdir(parents=True)

            resolved = PathResolver(marker=".no-such-marker").resolve("/x.yml", source_dir / "p.yml")

            assert resolved.path == source_dir / "x.yml"


class TestCrossRepositoryResolution:
    """Tests for @alias references."""

    def test_sibling_repository(self, repos):
        """Test an alias resolves inside the sibling checkout."""
        aliases = {"templates": "sibling-repo"}
        resolved = PathResolver().resolve("stages/build.yml@templates", repos.pipeline, aliases)

        assert resolved.path == repos.build
        assert resolved.repository == "sibling-repo"
        assert resolved.alias == "templates"
        assert resolved.is_cross_repository

    def test_leading_slash_stripped(self, repos):
        """Test /a/b.yml@alias and a/b.yml@alias are the same file."""
        aliases = {"templates": "sibling-repo"}
        resolver = PathResolver()

        with_slash = resolver.resolve("/stages/build.yml@templates", repos.pipeline, aliases)
        without_slash = resolver.resolve("stages/build.yml@templates", repos.pipeline, aliases)

        assert with_slash.path == without_slash.path

    @pytest.mark.parametrize("alias", ["missing", "", "SELF"])
    def test_unknown_alias(self, repos, alias):
        """Test an alias absent from the table is a typed result."""
        resolved = PathResolver().resolve(f"stages/build.yml@{alias}", repos.pipeline, {"templates": "sibling-repo"})

        assert resolved.is_unresolved_alias
        assert resolved.unresolved_alias == alias
        assert resolved.path is None

    def test_none_alias_table(self, repos):
        """Test a None table behaves like an empty one."""
        resolved = PathResolver().resolve("stages/build.yml@templates", repos.pipeline, None)
        assert resolved.unresolved_alias == "templates"


class TestRepoRoot:
    """Tests for repository root detection."""

    def test_walks_up_to_marker(self, repos):
        """Test the nearest .git ancestor is the root."""
        assert find_repo_root(repos.pipeline.parent) == repos.main

    def test_memoized(self, repos):
        """Test repo roots are remembered per directory until cleared."""
        resolver = PathResolver()
        assert resolver.repo_root(repos.pipeline.parent) == repos.main

        (repos.main / ".git").rmdir()
        assert resolver.repo_root(repos.pipeline.parent) == repos.main

        resolver.clear()
        assert resolver.repo_root(repos.pipeline.parent) != repos.main
