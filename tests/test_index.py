"""Tests for the workspace reference index."""

import threading

import pytest

from graph.builder import GraphBuilder
from graph.index import WorkspaceIndex
from graph.model import RealKey
from scanner.cache import FileCache
from scanner.resolver import PathResolver


CHAIN = {
    "pipelines/ci.yml": "trigger: none\nsteps:\n  - template: ../steps/a.yml\n",
    "steps/a.yml": "steps:\n  - template: b.yml\n",
    "steps/b.yml": "steps:\n  - script: echo b\n",
}


@pytest.fixture
def index():
    return WorkspaceIndex(FileCache(), PathResolver())


def _consistent(index):
    """Reverse map holds exactly the inverted forward map."""
    snapshot = index._snapshot
    inverted = {}
    for source, targets in snapshot.forward.items():
        for target in targets:
            inverted.setdefault(target, set()).add(source)
    return inverted == snapshot.reverse


class _HookedLock:
    """Lock that runs a callback before every acquire."""

    def __init__(self, before_acquire):
        self._lock = threading.Lock()
        self._before_acquire = before_acquire

    def __enter__(self):
        self._before_acquire()
        self._lock.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._lock.release()


class TestBuild:
    """Tests for full index builds."""

    def test_not_ready_before_build(self, index, corpus):
        """Test queries on an unbuilt index are empty."""
        files = corpus(CHAIN)

        assert not index.is_ready()
        assert index.get_callers(files["steps/a.yml"]) == set()
        assert index.all_files() == []

    def test_build(self, index, corpus):
        """Test forward and reverse maps after a build."""
        files = corpus(CHAIN)
        snapshot = index.build(corpus.root)

        assert snapshot is not None
        assert index.is_ready()
        assert index.all_files() == sorted(files.values())
        assert index.get_callers(files["steps/a.yml"]) == {files["pipelines/ci.yml"]}
        assert index.get_callees(files["steps/a.yml"]) == {files["steps/b.yml"]}
        assert _consistent(index)

    def test_missing_targets_indexed(self, index, corpus):
        """Test references to absent files are kept in the maps."""
        files = corpus({"a.yml": "steps:\n  - template: later.yml\n"})
        index.build(corpus.root)

        assert index.get_callers(corpus.root / "later.yml") == {files["a.yml"]}

    def test_unknown_alias_not_indexed(self, index, corpus):
        """Test unknown-alias references have no path to index."""
        files = corpus({"a.yml": "steps:\n  - template: x.yml@nope\n"})
        index.build(corpus.root)

        assert index.get_callees(files["a.yml"]) == set()

    def test_on_ready(self, index, corpus):
        """Test callbacks run once the build completes, or at once afterwards."""
        corpus(CHAIN)
        calls = []
        index.on_ready(lambda: calls.append("early"))
        assert calls == []

        index.build(corpus.root)
        index.on_ready(lambda: calls.append("late"))

        assert calls == ["early", "late"]

    def test_background_build(self, index, corpus):
        """Test start_build completes on a daemon thread."""
        corpus(CHAIN)
        thread = index.start_build(corpus.root)
        thread.join(timeout=10)

        assert thread.daemon
        assert index.wait_ready(timeout=10)

    def test_superseded_build_discarded(self, index, corpus):
        """Test a build overtaken by a reset does not install its snapshot."""
        corpus(CHAIN)
        targets_of = index._targets_of
        state = {"reset": False}

        def targets_with_reset(path):
            if not state["reset"]:
                state["reset"] = True
                index.reset()
            return targets_of(path)

        index._targets_of = targets_with_reset

        assert index.build(corpus.root) is None
        assert not index.is_ready()

    def test_changes_during_build_replayed(self, index, corpus):
        """Test a file created while a build runs ends up in the index."""
        files = corpus(CHAIN)
        targets_of = index._targets_of
        late = corpus.root / "steps" / "late.yml"
        state = {"created": False}

        def targets_with_create(path):
            if not state["created"]:
                state["created"] = True
                late.write_text("steps:\n  - template: b.yml\n", encoding="utf-8")
                index.update_file(late)
            return targets_of(path)

        index._targets_of = targets_with_create
        index.build(corpus.root)

        assert late in index.all_files()
        assert index.get_callers(files["steps/b.yml"]) == {files["steps/a.yml"], late}
        assert _consistent(index)

    def test_change_after_scan_replayed(self, index, corpus):
        """Test a change reported between the scan and the install is not lost."""
        files = corpus({
            "a.yml": "steps:\n  - template: b.yml\n",
            "b.yml": "steps:\n  - script: echo b\n",
        })
        state = {"acquires": 0, "busy": False, "active": []}

        def before_acquire():
            # Only the build's own acquires before its snapshot is installed
            if state["busy"] or index._snapshot is not None:
                return
            state["acquires"] += 1
            if state["acquires"] == 1:
                return
            state["active"].append(index._active_builds)
            if state["acquires"] == 2:
                state["busy"] = True
                files["a.yml"].write_text("steps:\n  - template: c.yml\n", encoding="utf-8")
                index.cache.invalidate(files["a.yml"])
                index.update_file(files["a.yml"])
                state["busy"] = False

        index._lock = _HookedLock(before_acquire)
        index.build(corpus.root)

        assert state["active"] == [1]
        assert index.get_callers(corpus.root / "c.yml") == {files["a.yml"]}
        assert index.get_callers(files["b.yml"]) == set()
        assert _consistent(index)


class TestIncrementalUpdates:
    """Tests for update_file and remove_file."""

    def test_update_applies_diff(self, index, corpus):
        """Test a changed reference moves the reverse entry."""
        files = corpus(CHAIN)
        index.build(corpus.root)

        files["steps/a.yml"].write_text("steps:\n  - template: c.yml\n", encoding="utf-8")
        index.cache.invalidate(files["steps/a.yml"])
        index.update_file(files["steps/a.yml"])

        assert index.get_callers(files["steps/b.yml"]) == set()
        assert index.get_callers(corpus.root / "steps" / "c.yml") == {files["steps/a.yml"]}
        assert _consistent(index)

    def test_update_matches_rebuild(self, index, corpus):
        """Test incremental maintenance agrees with a fresh build."""
        files = corpus(CHAIN)
        index.build(corpus.root)

        new = corpus({"steps/c.yml": "steps:\n  - template: a.yml\n  - template: b.yml\n"})["steps/c.yml"]
        index.update_file(new)
        files["pipelines/ci.yml"].write_text("trigger: none\nsteps:\n  - template: ../steps/c.yml\n", encoding="utf-8")
        index.cache.invalidate(files["pipelines/ci.yml"])
        index.update_file(files["pipelines/ci.yml"])

        fresh = WorkspaceIndex(FileCache(), PathResolver())
        fresh.build(corpus.root)

        assert index._snapshot.forward == fresh._snapshot.forward
        assert index._snapshot.reverse == fresh._snapshot.reverse

    def test_remove_keeps_callers_of_removed_file(self, index, corpus):
        """Test deleting a file keeps who referenced it but drops its own edges."""
        files = corpus(CHAIN)
        index.build(corpus.root)

        files["steps/a.yml"].unlink()
        index.remove_file(files["steps/a.yml"])

        assert files["steps/a.yml"] not in index.all_files()
        assert index.get_callers(files["steps/a.yml"]) == {files["pipelines/ci.yml"]}
        assert index.get_callers(files["steps/b.yml"]) == set()
        assert _consistent(index)

    def test_updates_before_build_ignored(self, index, corpus):
        """Test updates without a snapshot are no-ops."""
        files = corpus(CHAIN)
        index.update_file(files["steps/a.yml"])
        index.remove_file(files["steps/a.yml"])

        assert not index.is_ready()


class TestQueries:
    """Tests for caller queries."""

    def test_transitive_callers(self, index, corpus):
        """Test callers are followed across levels."""
        files = corpus(CHAIN)
        index.build(corpus.root)

        assert index.transitive_callers(files["steps/b.yml"]) == {files["steps/a.yml"], files["pipelines/ci.yml"]}
        assert index.transitive_callers(files["steps/b.yml"], depth=1) == {files["steps/a.yml"]}

    def test_transitive_callers_on_cycle(self, index, corpus):
        """Test a file on a cycle is its own transitive caller."""
        files = corpus({
            "a.yml": "steps:\n  - template: b.yml\n",
            "b.yml": "steps:\n  - template: a.yml\n",
        })
        index.build(corpus.root)

        assert index.transitive_callers(files["a.yml"]) == {files["a.yml"], files["b.yml"]}

    def test_upstream_tree_matches_scan(self, index, corpus):
        """Test the indexed upstream tree equals the scan-based one."""
        files = corpus(CHAIN)
        index.build(corpus.root)
        builder = GraphBuilder(corpus.root, index.cache, index.resolver)

        indexed = index.upstream_tree(files["steps/b.yml"])
        scanned = builder.upstream_tree(files["steps/b.yml"])

        assert [(d, t.key) for d, t in indexed.walk()] == [(d, t.key) for d, t in scanned.walk()]
        assert [t.key for _, t in indexed.walk()] == [
            RealKey(files["steps/b.yml"]),
            RealKey(files["steps/a.yml"]),
            RealKey(files["pipelines/ci.yml"]),
        ]


    def test_upstream_tree_through_symlink(self, index, corpus, tmp_path):
        """Test a target named through a symlinked directory still finds its callers."""
        files = corpus(CHAIN)
        index.build(corpus.root)
        link = tmp_path / "linked"
        link.symlink_to(corpus.root, target_is_directory=True)

        tree = index.upstream_tree(link / "steps" / "b.yml", depth=1)

        assert tree.key == RealKey(files["steps/b.yml"])
        assert [child.key for child in tree.children] == [RealKey(files["steps/a.yml"])]

    def test_builder_prefers_ready_index(self, index, corpus):
        """Test the builder answers from the index once it is ready."""
        files = corpus(CHAIN)
        index.build(corpus.root)
        builder = GraphBuilder(corpus.root, index.cache, index.resolver, index)

        # Only the index knows about this caller
        phantom = corpus.root / "phantom.yml"
        index._snapshot.reverse.setdefault(files["steps/b.yml"], set()).add(phantom)

        tree = builder.upstream_tree(files["steps/b.yml"], depth=1)
        assert RealKey(phantom) in [child.key for child in tree.children]
