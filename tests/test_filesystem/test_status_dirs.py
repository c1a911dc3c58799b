"""Tests for placing items into status directories of the mirror."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reposync.filesystem.frontmatter import decode_item
from reposync.filesystem.status_dirs import count_items, list_mirror_files, place
from reposync.models.item import ContentItem, ItemStatus

if TYPE_CHECKING:
    from pathlib import Path


def _item(status: ItemStatus = ItemStatus.GENERATED, body: str = "Body") -> ContentItem:
    return ContentItem("a.md", status, {"title": "A"}, body)


class TestPlace:
    def test_writes_into_status_directory_with_sync_keys(self, tmp_path: Path) -> None:
        assert place(tmp_path, "alice", _item(), "2026-01-01T00:00:00+00:00") is True
        target = tmp_path / "alice" / "drafts" / "a.md"
        decoded = decode_item(target.read_text(encoding="utf-8"), "a.md")
        assert decoded.metadata == {
            "title": "A",
            "account_id": "alice",
            "synced_at": "2026-01-01T00:00:00+00:00",
        }
        assert decoded.status == ItemStatus.GENERATED

    def test_unchanged_content_is_not_rewritten(self, tmp_path: Path) -> None:
        place(tmp_path, "alice", _item(), "2026-01-01T00:00:00+00:00")
        target = tmp_path / "alice" / "drafts" / "a.md"
        before = target.read_text(encoding="utf-8")

        assert place(tmp_path, "alice", _item(), "2026-02-02T00:00:00+00:00") is False
        assert target.read_text(encoding="utf-8") == before

    def test_body_change_is_written(self, tmp_path: Path) -> None:
        place(tmp_path, "alice", _item(), "t1")
        assert place(tmp_path, "alice", _item(body="New body"), "t2") is True
        target = tmp_path / "alice" / "drafts" / "a.md"
        assert decode_item(target.read_text(encoding="utf-8"), "a.md").body == "New body"

    def test_status_change_moves_the_file(self, tmp_path: Path) -> None:
        place(tmp_path, "alice", _item(ItemStatus.GENERATED), "t1")
        assert place(tmp_path, "alice", _item(ItemStatus.REVIEWED), "t2") is True
        assert not (tmp_path / "alice" / "drafts" / "a.md").exists()
        assert (tmp_path / "alice" / "approved" / "a.md").is_file()

    def test_repairs_duplicate_copies(self, tmp_path: Path) -> None:
        place(tmp_path, "alice", _item(ItemStatus.REJECTED), "t1")
        stray = tmp_path / "alice" / "reviewing" / "a.md"
        stray.parent.mkdir(parents=True)
        stray.write_text("stray copy", encoding="utf-8")

        assert place(tmp_path, "alice", _item(ItemStatus.REJECTED), "t2") is True
        assert not stray.exists()
        assert list(list_mirror_files(tmp_path, "alice")) == ["a.md"]

    def test_accounts_are_isolated(self, tmp_path: Path) -> None:
        place(tmp_path, "alice", _item(), "t")
        place(tmp_path, "bob", _item(ItemStatus.REVIEWED), "t")
        assert (tmp_path / "alice" / "drafts" / "a.md").is_file()
        assert (tmp_path / "bob" / "approved" / "a.md").is_file()


class TestListing:
    def test_lists_files_per_status(self, tmp_path: Path) -> None:
        place(tmp_path, "alice", ContentItem("a.md", ItemStatus.GENERATED, body="a"), "t")
        place(tmp_path, "alice", ContentItem("b.md", ItemStatus.REJECTED, body="b"), "t")
        (tmp_path / "alice" / "drafts" / "notes.txt").write_text("ignored", encoding="utf-8")

        files = list_mirror_files(tmp_path, "alice")
        assert set(files) == {"a.md", "b.md"}
        assert files["b.md"][0][0] == ItemStatus.REJECTED
        assert count_items(tmp_path, "alice") == 2

    def test_missing_account(self, tmp_path: Path) -> None:
        assert list_mirror_files(tmp_path, "nobody") == {}
        assert count_items(tmp_path, "nobody") == 0

    def test_listing_ignores_dot_prefixed_files(self, tmp_path: Path) -> None:
        place(tmp_path, "alice", _item(), "t1")
        (tmp_path / "alice" / "drafts" / ".x.md").write_text("hidden", encoding="utf-8")
        assert list(list_mirror_files(tmp_path, "alice")) == ["a.md"]
        assert count_items(tmp_path, "alice") == 1
