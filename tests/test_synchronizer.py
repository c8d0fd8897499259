"""
Tests for rebuilding and reconciling the leaderboard store from the ledger.
"""

from datetime import datetime


async def seed(ledger, category, scores):
    for i, (user, score) in enumerate(scores):
        await ledger.apply_delta(user, category, score, f"seed-{category}-{i}")


def ranking(entries):
    return tuple((entry.user_id, entry.score) for entry in entries)


class TestRebuild:

    async def test_rebuild_loads_every_category(self, ledger, leaderboard_store, synchronizer):
        await seed(ledger, "global", [("alice", 50), ("bob", 40), ("carol", 30), ("dave", 20)])
        await seed(ledger, "speedrun", [("erin", 5)])

        rebuilt = await synchronizer.rebuild_all()

        assert rebuilt == 2
        assert leaderboard_store.snapshot("global").ranking() == (("alice", 50), ("bob", 40), ("carol", 30))
        assert leaderboard_store.snapshot("speedrun").ranking() == (("erin", 5),)

    async def test_rebuild_empty_ledger(self, synchronizer, leaderboard_store):
        assert await synchronizer.rebuild_all() == 0
        assert leaderboard_store.categories() == []


class TestReconcile:

    async def test_in_sync_category_is_left_alone(self, ledger, leaderboard_store, synchronizer):
        await seed(ledger, "global", [("alice", 50), ("bob", 40)])
        await synchronizer.rebuild_all()
        version = leaderboard_store.version("global")

        report = await synchronizer.reconcile_category("global")

        assert not report.drifted
        assert not report.repaired
        assert leaderboard_store.version("global") == version

    async def test_phantom_and_missing_entries_converge(self, ledger, leaderboard_store, synchronizer, broadcaster):
        await seed(ledger, "global", [("alice", 50), ("bob", 40)])
        # Store missed bob and holds a user the ledger never saw
        await leaderboard_store.upsert("global", "alice", 50, datetime(2024, 1, 1))
        await leaderboard_store.upsert("global", "ghost", 999, datetime(2024, 1, 1))
        subscription = broadcaster.subscribe("global")
        subscription.get_nowait()

        report = await synchronizer.reconcile_category("global")

        assert report.repaired
        assert report.added == ["bob"]
        assert report.removed == ["ghost"]
        assert leaderboard_store.snapshot("global").ranking() == ranking(await ledger.top_n("global", 3))
        assert subscription.get_nowait().ranking() == (("alice", 50), ("bob", 40))

    async def test_rescored_entry_repaired(self, ledger, leaderboard_store, synchronizer):
        await seed(ledger, "global", [("alice", 50)])
        await synchronizer.rebuild_all()
        # Ledger moved on but the store upsert was lost
        await ledger.apply_delta("alice", "global", 25, "lost")

        report = await synchronizer.reconcile_category("global")

        assert report.rescored == ["alice"]
        assert leaderboard_store.snapshot("global").ranking() == (("alice", 75),)

    async def test_fresher_write_during_pass_is_not_overwritten(self, ledger, leaderboard_store, synchronizer):
        await seed(ledger, "global", [("alice", 50)])
        original_top_n = ledger.top_n

        async def top_n_racing_an_upsert(category, n):
            entries = await original_top_n(category, n)
            # A submission lands while the slow query is in flight
            await leaderboard_store.upsert(category, "bob", 70, datetime(2024, 1, 2))
            return entries

        ledger.top_n = top_n_racing_an_upsert

        report = await synchronizer.reconcile_category("global")

        assert report.skipped
        assert not report.repaired
        assert "bob" in leaderboard_store.snapshot("global").user_ids()

    async def test_reconcile_all_covers_both_stores(self, ledger, leaderboard_store, synchronizer):
        await seed(ledger, "global", [("alice", 10)])
        await leaderboard_store.upsert("orphan", "ghost", 5, datetime(2024, 1, 1))

        reports = await synchronizer.reconcile_all()

        assert [report.category for report in reports] == ["global", "orphan"]
        assert leaderboard_store.snapshot("orphan").entries == ()
        assert leaderboard_store.snapshot("global").ranking() == (("alice", 10),)
        assert synchronizer.last_reports == reports

    async def test_one_failing_category_does_not_stop_the_pass(self, ledger, leaderboard_store, synchronizer):
        await seed(ledger, "alpha", [("alice", 10)])
        await seed(ledger, "beta", [("bob", 20)])
        original_top_n = ledger.top_n

        async def broken_for_alpha(category, n):
            if category == "alpha":
                raise RuntimeError("boom")
            return await original_top_n(category, n)

        ledger.top_n = broken_for_alpha

        reports = await synchronizer.reconcile_all()

        assert [report.category for report in reports] == ["beta"]
        assert leaderboard_store.snapshot("beta").ranking() == (("bob", 20),)
