"""Tests for git working-copy operations (requires git)."""

import pytest

from tract_sync.core.repo import (
    GitRepo,
    has_origin_trailer,
    origin_trailer,
)
from tract_sync.exceptions import GitError


class TestTrailer:
    def test_origin_trailer(self):
        assert origin_trailer("tract-sync") == "Tract-Sync-Origin: tract-sync"

    def test_has_origin_trailer(self):
        message = "Sync APP-1 from Jira\n\nTract-Sync-Origin: tract-sync"
        assert has_origin_trailer(message, "tract-sync")
        assert not has_origin_trailer(message, "someone-else")

    def test_trailer_must_be_a_whole_line(self):
        message = "Mention Tract-Sync-Origin: tract-sync in passing"
        assert not has_origin_trailer(message, "tract-sync")


class TestGitRepo:
    def test_is_repo(self, git_repo, tmp_path):
        assert git_repo.is_repo()
        plain = tmp_path / "plain"
        plain.mkdir()
        assert not GitRepo(plain, "x", "x@example.com").is_repo()

    def test_commit_authored_by_sync_identity(self, git_repo):
        path = git_repo.root / "issues" / "APP-1.md"
        path.parent.mkdir()
        path.write_text("---\nid: APP-1\n---\n")

        sha = git_repo.commit("Sync APP-1 from Jira", [path])

        assert sha
        last = git_repo.last_commit()
        assert last["name"] == "tract-sync"
        assert last["email"] == "tract-sync@example.com"
        assert last["message"].startswith("Sync APP-1 from Jira")
        assert has_origin_trailer(last["message"], "tract-sync")

    def test_nothing_changed_returns_none(self, git_repo):
        path = git_repo.root / "a.md"
        path.write_text("one\n")
        assert git_repo.commit("first", [path])
        assert git_repo.commit("again", [path]) is None

    def test_only_given_paths_committed(self, git_repo):
        wanted = git_repo.root / "a.md"
        other = git_repo.root / "b.md"
        wanted.write_text("a\n")
        other.write_text("b\n")

        git_repo.commit("only a", [wanted])

        assert git_repo.is_tracked("a.md")
        assert not git_repo.is_tracked("b.md")
        assert git_repo.changed_paths() == ["b.md"]

    def test_deletion_and_rename(self, git_repo):
        old = git_repo.root / "issues" / "APP-TEMP-1.md"
        old.parent.mkdir()
        old.write_text("temp\n")
        git_repo.commit("add temp", [old])

        new = old.with_name("APP-100.md")
        old.rename(new)
        sha = git_repo.commit("promote", [old, new])

        assert sha
        assert not git_repo.is_tracked("issues/APP-TEMP-1.md")
        assert git_repo.is_tracked("issues/APP-100.md")
        assert not git_repo.has_changes()

    def test_unknown_paths_ignored(self, git_repo):
        assert git_repo.commit("ghost", [git_repo.root / "nope.md"]) is None

    def test_changed_paths_prefix(self, git_repo):
        (git_repo.root / "issues").mkdir()
        (git_repo.root / "issues" / "APP-1.md").write_text("x\n")
        (git_repo.root / "notes.md").write_text("y\n")
        assert git_repo.changed_paths("issues") == ["issues/APP-1.md"]
        assert git_repo.has_changes("issues")

    def test_git_failure_raises(self, git_repo):
        with pytest.raises(GitError) as excinfo:
            git_repo._git("rev-parse", "--verify", "no-such-ref")
        assert excinfo.value.returncode != 0
        assert excinfo.value.command[0] == "rev-parse"
