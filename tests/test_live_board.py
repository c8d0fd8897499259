"""
Tests for the live board follower and the follow/unfollow bookkeeping.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from scoreboard.cogs.live_board import LiveBoardCog, LiveBoardFollower
from scoreboard.utils.embeds import build_leaderboard_embed


def fake_channel(channel_id=1234):
    message = MagicMock()
    message.edit = AsyncMock()
    channel = MagicMock()
    channel.id = channel_id
    channel.guild = None
    channel.send = AsyncMock(return_value=message)
    return channel, message


class TestLiveBoardFollower:

    async def test_first_snapshot_posts_then_edits(self, broadcaster, leaderboard_store):
        channel, message = fake_channel()
        subscription = broadcaster.subscribe("global")
        follower = LiveBoardFollower(channel, subscription)

        task = asyncio.create_task(follower.run())
        await leaderboard_store.upsert("global", "alice", 10)
        broadcaster.publish("global", leaderboard_store.snapshot("global"))
        await asyncio.sleep(0.01)
        broadcaster.unsubscribe(subscription)
        await asyncio.wait_for(task, timeout=1)

        channel.send.assert_awaited_once()
        message.edit.assert_awaited_once()
        assert follower.delivered == 2


class TestLiveBoardCog:

    async def test_follow_and_unfollow(self, broadcaster):
        cog = LiveBoardCog(SimpleNamespace(broadcaster=broadcaster))
        channel, _ = fake_channel()

        assert cog.follow(channel, "global") is True
        assert cog.follow(channel, "global") is False
        assert broadcaster.subscriber_count("global") == 1

        assert cog.unfollow(channel.id, "global") is True
        assert cog.unfollow(channel.id, "global") is False
        assert broadcaster.subscriber_count("global") == 0

    async def test_unload_stops_every_follower(self, broadcaster):
        cog = LiveBoardCog(SimpleNamespace(broadcaster=broadcaster))
        for channel_id in (1, 2):
            cog.follow(fake_channel(channel_id)[0], "global")

        cog.cog_unload()
        await asyncio.sleep(0)

        assert cog.followers == {}
        assert broadcaster.subscriber_count("global") == 0


class TestLeaderboardEmbed:

    async def test_entries_in_rank_order(self, leaderboard_store):
        await leaderboard_store.upsert("global", "alice", 50)
        await leaderboard_store.upsert("global", "bob", 70)

        embed = build_leaderboard_embed(leaderboard_store.snapshot("global"), lambda user_id: user_id.title())

        lines = embed.description.splitlines()
        assert "Bob" in lines[0] and "Alice" in lines[1]

    def test_empty_board(self, leaderboard_store):
        embed = build_leaderboard_embed(leaderboard_store.snapshot("global"))

        assert embed.description == "No scores yet. Be the first!"
