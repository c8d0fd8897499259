"""
Tests for action token issuance and single-use consumption.
"""

import asyncio

import pytest

from scoreboard.data_models.tokens import ActionToken, b64decode, b64encode
from scoreboard.services.action_tokens import ActionTokenService, MemoryTokenStore, create_token_store
from scoreboard.utils.scoreboard_exceptions import ForbiddenError, InvalidTokenError


class TestIssueAndConsume:

    async def test_issued_token_is_consumed_once(self, token_service):
        encoded = await token_service.issue("alice", "global")

        token = await token_service.consume(encoded, "alice", "global")

        assert token.user_id == "alice"
        assert token.category == "global"
        with pytest.raises(InvalidTokenError):
            await token_service.consume(encoded, "alice", "global")

    async def test_concurrent_consumers_exactly_one_wins(self, token_service):
        encoded = await token_service.issue("alice", "global")

        results = await asyncio.gather(
            *(token_service.consume(encoded, "alice", "global") for _ in range(10)),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, ActionToken)]
        failures = [r for r in results if isinstance(r, InvalidTokenError)]
        assert len(successes) == 1
        assert len(failures) == 9

    async def test_tokens_are_unique(self, token_service):
        first = await token_service.issue("alice", "global")
        second = await token_service.issue("alice", "global")

        assert first != second
        assert token_service.decode(first).token_id != token_service.decode(second).token_id

    async def test_expiry_is_embedded_in_payload(self, token_service, clock):
        encoded = await token_service.issue("alice", "global")

        assert token_service.decode(encoded).expires_at == clock.now + 60


class TestRejection:

    async def test_wrong_user(self, token_service):
        encoded = await token_service.issue("alice", "global")

        with pytest.raises(InvalidTokenError) as excinfo:
            await token_service.consume(encoded, "bob", "global")
        assert excinfo.value.reason == "user mismatch"

    async def test_wrong_category(self, token_service):
        encoded = await token_service.issue("alice", "global")

        with pytest.raises(InvalidTokenError) as excinfo:
            await token_service.consume(encoded, "alice", "speedrun")
        assert excinfo.value.reason == "category mismatch"

    async def test_mismatch_does_not_spend_token(self, token_service):
        encoded = await token_service.issue("alice", "global")

        with pytest.raises(InvalidTokenError):
            await token_service.consume(encoded, "bob", "global")

        assert (await token_service.consume(encoded, "alice", "global")).user_id == "alice"

    async def test_expired(self, token_service, clock):
        encoded = await token_service.issue("alice", "global")
        clock.advance(60)

        with pytest.raises(InvalidTokenError) as excinfo:
            await token_service.consume(encoded, "alice", "global")
        assert excinfo.value.reason == "expired"

    async def test_signed_by_another_secret(self, token_store, clock):
        issuer = ActionTokenService(token_store, "another-secret-" + "x" * 32, ttl_seconds=60, clock=clock)
        verifier = ActionTokenService(token_store, "the-real-secret-" + "y" * 32, ttl_seconds=60, clock=clock)
        encoded = await issuer.issue("alice", "global")

        with pytest.raises(InvalidTokenError) as excinfo:
            await verifier.consume(encoded, "alice", "global")
        assert excinfo.value.reason == "bad signature"

    async def test_tampered_payload(self, token_service):
        encoded = await token_service.issue("alice", "global")
        payload, signature = encoded.split('.')
        forged = b64decode(payload).replace(b'"alice"', b'"bob"')

        with pytest.raises(InvalidTokenError):
            await token_service.consume(f"{b64encode(forged)}.{signature}", "bob", "global")

    @pytest.mark.parametrize("garbage", ["", "no-dot-here", "a.b.c", "!!!.???"])
    async def test_malformed(self, token_service, garbage):
        with pytest.raises(InvalidTokenError):
            await token_service.consume(garbage, "alice", "global")

    async def test_validly_signed_but_never_issued(self, token_service, clock):
        token = ActionToken(user_id="alice", category="global", expires_at=clock.now + 60, nonce="unissued")

        with pytest.raises(InvalidTokenError) as excinfo:
            await token_service.consume(token_service.encode(token), "alice", "global")
        assert excinfo.value.reason == "unknown or already consumed"

    async def test_rejections_share_one_user_message(self, token_service, clock):
        encoded = await token_service.issue("alice", "global")
        messages = set()
        for user, category in (("bob", "global"), ("alice", "other")):
            with pytest.raises(ForbiddenError) as excinfo:
                await token_service.consume(encoded, user, category)
            messages.add(excinfo.value.user_message)
        clock.advance(61)
        with pytest.raises(ForbiddenError) as excinfo:
            await token_service.consume(encoded, "alice", "global")
        messages.add(excinfo.value.user_message)

        assert len(messages) == 1


class TestMemoryTokenStore:

    async def test_purge_drops_expired_entries(self, token_service, token_store, clock):
        await token_service.issue("alice", "global")
        await token_service.issue("bob", "global")
        assert len(token_store) == 2

        clock.advance(61)

        assert await token_service.purge_expired() == 2
        assert len(token_store) == 0

    async def test_consumed_marker_outlives_token_expiry(self, token_service, token_store, clock):
        encoded = await token_service.issue("alice", "global")
        await token_service.consume(encoded, "alice", "global")

        clock.advance(61)
        assert await token_store.purge_expired() == 0
        assert len(token_store) == 1

        clock.advance(120)
        assert await token_store.purge_expired() == 1

    async def test_duplicate_pending_id_refused(self, clock):
        store = MemoryTokenStore(clock=clock)

        assert await store.add_pending("nonce", 60) is True
        assert await store.add_pending("nonce", 60) is False

    def test_memory_store_without_redis(self):
        assert isinstance(create_token_store(None), MemoryTokenStore)

    def test_secret_required(self, token_store):
        with pytest.raises(ValueError):
            ActionTokenService(token_store, "")
