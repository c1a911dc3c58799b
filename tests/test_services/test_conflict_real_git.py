"""safe_pull and safe_merge against real repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reposync.services.conflict_service import PULL_CONFLICT_COMMIT, safe_merge, safe_pull
from reposync.services.git_service import GitService
from tests.conftest import clone_remote, run_git

if TYPE_CHECKING:
    from pathlib import Path


async def _mirror(remote: Path, dest: Path) -> GitService:
    clone_remote(remote, dest)
    run_git(dest, "config", "commit.gpgsign", "false")
    return GitService(dest)


def _commit_file(repo: Path, name: str, content: str, message: str) -> None:
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    run_git(repo, "add", name)
    run_git(repo, "commit", "-m", message)


class TestSafePullRealGit:
    async def test_content_conflict_prefers_remote(self, seeded_remote: Path, tmp_path: Path) -> None:
        mirror_dir = tmp_path / "mirror"
        git = await _mirror(seeded_remote, mirror_dir)
        other = clone_remote(seeded_remote, tmp_path / "other")

        _commit_file(other, "alice/drafts/a.md", "remote version\n", "remote edit")
        run_git(other, "push", "origin", "main")
        _commit_file(mirror_dir, "alice/drafts/a.md", "local version\n", "local edit")

        assert await safe_pull(git, "main") is True

        content = (mirror_dir / "alice/drafts/a.md").read_text(encoding="utf-8")
        assert content == "remote version\n"
        assert run_git(mirror_dir, "log", "-1", "--format=%s").strip() == PULL_CONFLICT_COMMIT
        assert not (mirror_dir / ".git" / "MERGE_HEAD").exists()

    async def test_recovers_mirror_left_mid_merge(self, seeded_remote: Path, tmp_path: Path) -> None:
        mirror_dir = tmp_path / "mirror"
        git = await _mirror(seeded_remote, mirror_dir)
        other = clone_remote(seeded_remote, tmp_path / "other")

        _commit_file(other, "a.md", "theirs\n", "remote edit")
        run_git(other, "push", "origin", "main")
        _commit_file(mirror_dir, "a.md", "ours\n", "local edit")
        # Simulate an interrupted run: a conflicted merge is left in the working copy.
        run_git(mirror_dir, "fetch", "origin")
        await git.run("merge", "origin/main", check=False)
        assert (mirror_dir / ".git" / "MERGE_HEAD").exists()

        assert await safe_pull(git, "main") is True
        assert (mirror_dir / "a.md").read_text(encoding="utf-8") == "theirs\n"

    async def test_second_pull_after_resolution_is_a_no_op(
        self, seeded_remote: Path, tmp_path: Path
    ) -> None:
        mirror_dir = tmp_path / "mirror"
        git = await _mirror(seeded_remote, mirror_dir)
        other = clone_remote(seeded_remote, tmp_path / "other")
        _commit_file(other, "a.md", "theirs\n", "remote edit")
        run_git(other, "push", "origin", "main")
        _commit_file(mirror_dir, "a.md", "ours\n", "local edit")

        assert await safe_pull(git, "main") is True
        head = run_git(mirror_dir, "rev-parse", "HEAD").strip()
        assert await safe_pull(git, "main") is True
        assert run_git(mirror_dir, "rev-parse", "HEAD").strip() == head
        assert (mirror_dir / "a.md").read_text(encoding="utf-8") == "theirs\n"

    async def test_dirty_tree_keeps_remote_version(self, seeded_remote: Path, tmp_path: Path) -> None:
        mirror_dir = tmp_path / "mirror"
        git = await _mirror(seeded_remote, mirror_dir)
        other = clone_remote(seeded_remote, tmp_path / "other")
        _commit_file(other, "README.md", "# remote readme\n", "remote edit")
        run_git(other, "push", "origin", "main")
        (mirror_dir / "README.md").write_text("# uncommitted local edit\n", encoding="utf-8")

        assert await safe_pull(git, "main") is True
        assert (mirror_dir / "README.md").read_text(encoding="utf-8") == "# remote readme\n"
        assert run_git(mirror_dir, "stash", "list").strip() == ""

    async def test_empty_remote(self, bare_remote: Path, tmp_path: Path) -> None:
        git = await _mirror(bare_remote, tmp_path / "mirror")
        assert await safe_pull(git, "main") is True


class TestSafeMergeRealGit:
    async def test_merge_conflict_takes_main(self, seeded_remote: Path, tmp_path: Path) -> None:
        mirror_dir = tmp_path / "mirror"
        await _mirror(seeded_remote, mirror_dir)
        git = GitService(mirror_dir)
        run_git(mirror_dir, "checkout", "-b", "edit/alice/2026-01-01")
        _commit_file(mirror_dir, "a.md", "branch\n", "branch edit")
        run_git(mirror_dir, "checkout", "main")
        _commit_file(mirror_dir, "a.md", "main\n", "main edit")
        run_git(mirror_dir, "checkout", "edit/alice/2026-01-01")

        await safe_merge(git, "main")

        assert (mirror_dir / "a.md").read_text(encoding="utf-8") == "main\n"
        subject = run_git(mirror_dir, "log", "-1", "--format=%s").strip()
        assert subject == "[auto] Resolve conflict: merge main"
