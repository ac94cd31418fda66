"""Tests for bulk tag application."""

from __future__ import annotations

import threading

import pytest

from cma.client import AuthenticationError, TransientError
from conftest import LOCALE, asset_link, entry_link
from crawl.apply import ApplyState, TagApplier
from crawl.config import CrawlConfig
from crawl.errors import NothingToApplyError
from crawl.inventory import AssetRow, EntryRow, ExcludedReason, Inventory
from crawl.progress import ProgressChannel
from crawl.traversal import GraphTraverser


def crawl(repo, roots, targets, **config):
    return GraphTraverser(repo, CrawlConfig(**config), LOCALE).crawl(roots, targets)


def stored_tags(doc) -> list:
    return [link["sys"]["id"] for link in doc["metadata"]["tags"]]


@pytest.fixture
def site(repo):
    """Root page linking five entries and one asset, one entry already tagged."""
    children = [entry_link(f"C{i}") for i in range(5)]
    repo.add_entry("ROOT", fields={"title": "Home", "body": children, "hero": asset_link("M1")})
    for i in range(5):
        repo.add_entry(f"C{i}", tags=["t1"] if i == 0 else None)
    repo.add_asset("M1")
    return repo


class TestApply:
    """End-to-end apply against a crawled inventory."""

    def test_tags_are_added_as_a_union(self, site) -> None:
        site.entries["C1"]["metadata"]["tags"] = [
            {"sys": {"type": "Link", "linkType": "Tag", "id": "other"}}
        ]
        inventory = crawl(site, ["ROOT"], ["t1"])

        summary = TagApplier(site).apply(inventory, ["C1"], [], ["t1"])

        assert summary.entries.updated == 1
        assert stored_tags(site.entries["C1"]) == ["other", "t1"]

    def test_apply_all_then_reapply_is_a_no_op(self, site) -> None:
        inventory = crawl(site, ["ROOT"], ["t1"])
        entry_ids = inventory.actionable_entry_ids()
        asset_ids = inventory.actionable_asset_ids()

        first = TagApplier(site).apply(inventory, entry_ids, asset_ids, ["t1"])

        assert first.entries.updated == 5
        assert first.assets.updated == 1
        assert first.total_failed == 0
        for doc in site.entries.values():
            assert stored_tags(doc) == ["t1"]

        writes = site.count("update_entry") + site.count("update_asset")
        rescan = crawl(site, ["ROOT"], ["t1"])
        assert not rescan.has_anything_to_apply

        # a stale inventory is re-checked against fresh state before writing
        second = TagApplier(site).apply(inventory, entry_ids, asset_ids, ["t1"])
        assert second.entries.updated == 0
        assert second.entries.skipped_already_ok == 5
        assert site.count("update_entry") + site.count("update_asset") == writes

    def test_one_failing_item_does_not_stop_the_rest(self, site) -> None:
        inventory = crawl(site, ["ROOT"], ["t1"])
        entry_ids = inventory.actionable_entry_ids()
        site.fail["C3"] = TransientError("Server error: 500")

        summary = TagApplier(site).apply(inventory, entry_ids, [], ["t1"])

        assert summary.entries.selected == len(entry_ids)
        assert summary.entries.failed == 1
        assert summary.entries.updated == len(entry_ids) - 1
        assert summary.failed_ids == ["C3"]
        assert stored_tags(site.entries["C3"]) == []

    def test_rejected_token_stops_the_run(self, site) -> None:
        inventory = crawl(site, ["ROOT"], ["t1"])
        site.fail["C1"] = AuthenticationError("Access denied (401): token revoked")
        site.calls.clear()
        applier = TagApplier(site, concurrency=1)

        with pytest.raises(AuthenticationError):
            applier.apply(inventory, ["C1", "C2", "C3"], ["M1"], ["t1"])

        assert applier.state is ApplyState.FAILED
        assert site.calls == [("get_entry", "C1")]
        assert stored_tags(site.entries["C2"]) == []
        assert stored_tags(site.assets["M1"]) == []

    def test_published_items_are_republished(self, repo) -> None:
        repo.add_entry("P", published=True, version=4)
        repo.add_entry("D")
        inventory = crawl(repo, ["P", "D"], ["t1"])

        summary = TagApplier(repo).apply(inventory, ["P", "D"], [], ["t1"])

        assert summary.entries.updated == 2
        assert summary.entries.republished == 1
        assert ("publish_entry", "P", 5) in repo.calls
        assert repo.entries["P"]["sys"]["publishedVersion"] == 5
        assert "publishedVersion" not in repo.entries["D"]["sys"]

    def test_publish_state_can_be_left_alone(self, repo) -> None:
        repo.add_entry("P", published=True, version=4)
        inventory = crawl(repo, ["P"], ["t1"])

        summary = TagApplier(repo).apply(inventory, ["P"], [], ["t1"], preserve_publish_state=False)

        assert summary.entries.republished == 0
        assert repo.count("publish_entry") == 0

    def test_published_asset_is_republished(self, repo) -> None:
        repo.add_entry("A", fields={"image": asset_link("M1")})
        repo.add_asset("M1", published=True)
        inventory = crawl(repo, ["A"], ["t1"])

        summary = TagApplier(repo).apply(inventory, [], ["M1"], ["t1"])

        assert summary.assets.republished == 1
        assert repo.count("publish_asset") == 1

    def test_excluded_and_already_tagged_are_counted_not_written(self, repo) -> None:
        repo.add_entry("R", fields={"x": [entry_link("X"), entry_link("OK")]})
        repo.add_entry("X", content_type="blocked")
        repo.add_entry("OK", tags=["t1"])
        inventory = crawl(repo, ["R"], ["t1"], excluded_content_types={"blocked"})

        summary = TagApplier(repo).apply(inventory, ["R", "X", "OK", "nope"], [], ["t1"])

        tally = summary.entries
        assert tally.selected == 3
        assert tally.updated == 1
        assert tally.skipped_excluded == 1
        assert tally.skipped_already_ok == 1
        assert tally.selected == tally.updated + tally.skipped_excluded + \
            tally.skipped_already_ok + tally.failed
        assert repo.count("update_entry") == 1

    def test_unreachable_row_is_retried_on_apply(self, repo) -> None:
        repo.add_entry("R", fields={"x": entry_link("B")})
        repo.add_entry("B")
        repo.fail["B"] = TransientError("Server error: 502")
        inventory = crawl(repo, ["R"], ["t1"])
        assert inventory.entries["B"].unreachable

        del repo.fail["B"]
        summary = TagApplier(repo).apply(inventory, ["B"], [], ["t1"])

        assert summary.entries.updated == 1


class TestPreconditions:
    def test_no_target_tags(self, repo) -> None:
        applier = TagApplier(repo)
        with pytest.raises(NothingToApplyError):
            applier.apply(Inventory(), ["A"], [], [])
        assert applier.state is ApplyState.FAILED
        assert repo.calls == []

    def test_empty_selection(self, repo) -> None:
        applier = TagApplier(repo)
        with pytest.raises(NothingToApplyError):
            applier.apply(Inventory(), [], [], ["t1"])
        assert applier.state is ApplyState.FAILED

    def test_state_after_success(self, repo) -> None:
        repo.add_entry("A")
        inventory = crawl(repo, ["A"], ["t1"])
        applier = TagApplier(repo)
        assert applier.state is ApplyState.IDLE

        applier.apply(inventory, ["A"], [], ["t1"])

        assert applier.state is ApplyState.DONE


class TestProgressAndCancel:
    def test_nothing_to_update_message(self, repo) -> None:
        inventory = Inventory(entries={
            "A": EntryRow(id="A", content_type="page", title="A", existing_tag_ids=["t1"]),
        }, assets={
            "M": AssetRow(id="M", title="M", existing_tag_ids=["t1"]),
        })
        channel = ProgressChannel()

        summary = TagApplier(repo, progress=channel).apply(inventory, ["A"], ["M"], ["t1"])

        messages = [e.message for e in channel.drain()]
        assert any(m.startswith("Nothing to update") for m in messages)
        assert summary.entries.skipped_already_ok == 1
        assert summary.assets.skipped_already_ok == 1
        assert repo.calls == []

    def test_progress_counts(self, site) -> None:
        inventory = crawl(site, ["ROOT"], ["t1"])
        channel = ProgressChannel()

        TagApplier(site, progress=channel).apply(
            inventory, inventory.actionable_entry_ids(), inventory.actionable_asset_ids(), ["t1"]
        )

        events = channel.drain()
        entry_events = [e for e in events if e.phase == "entries"]
        asset_events = [e for e in events if e.phase == "assets"]
        assert entry_events[0].processed == 0
        assert entry_events[-1].processed == entry_events[-1].total == 5
        assert asset_events[-1].processed == 1
        assert events[-1].message == "Done."

    def test_cancel_before_dispatch(self, site) -> None:
        inventory = crawl(site, ["ROOT"], ["t1"])
        cancel = threading.Event()
        cancel.set()

        summary = TagApplier(site, cancel_event=cancel).apply(
            inventory, inventory.actionable_entry_ids(), [], ["t1"]
        )

        assert summary.cancelled
        assert summary.entries.updated == 0
        assert site.count("update_entry") == 0

    def test_excluded_row_from_saved_inventory(self, repo) -> None:
        inventory = Inventory(entries={
            "L": EntryRow(id="L", content_type="location", title="L", excluded=True,
                          excluded_reason=ExcludedReason.LOCATION),
        })

        summary = TagApplier(repo).apply(inventory, ["L"], [], ["t1"])

        assert summary.entries.skipped_excluded == 1
        assert repo.calls == []
