"""Unit tests for the refresh-token rotation chain."""

from datetime import timedelta

import pytest

from authgate.core.errors import RefreshTokenExpired, TokenRevoked, TokenUnknown
from authgate.core.roles import RoleType
from authgate.core.security import hash_token
from authgate.stores.records import RevokeReason


async def _principal(storage, role_type=RoleType.DEVELOPER, tenant=None, email="dev@example.com"):
    async with storage.transaction() as tx:
        return await tx.credentials.create(
            role_type=role_type,
            tenant_scope=tenant,
            provider="local",
            provider_key=email,
            password_hash="x",
            profile_fields={},
        )


class TestOpen:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_open_uses_configured_lifetimes(self, services, storage, clock) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            pair = await services.ledger.open(tx, principal)

        assert pair.expired_at == clock() + timedelta(hours=1)
        assert pair.refreshable_until == clock() + timedelta(days=7)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_at_is_the_token_expiry(self, services, storage, clock) -> None:
        clock.current = clock.current.replace(microsecond=647027)
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            pair = await services.ledger.open(tx, principal)

        assert pair.expired_at == services.codec.verify_access(pair.access).expires_at
        assert pair.refreshable_until.microsecond == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_only_the_hash_is_stored(self, services, storage) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            pair = await services.ledger.open(tx, principal)
            record = await tx.sessions.find_by_id(pair.session_id)

        assert record.refresh_token_hash == hash_token(pair.refresh)
        assert record.refresh_token_hash != pair.refresh
        assert record.rotated_from is None


class TestRedeem:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_redeem_rotates(self, services, storage) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            first = await services.ledger.open(tx, principal)
        async with storage.transaction() as tx:
            second = await services.ledger.redeem(tx, first.refresh)
            consumed = await tx.sessions.find_by_id(first.session_id)
            successor = await tx.sessions.find_by_id(second.session_id)

        assert second.access != first.access
        assert second.refresh != first.refresh
        assert consumed.revoked_at is not None
        assert consumed.revoke_reason == "rotated"
        assert successor.rotated_from == first.session_id

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expiries_move_forward_even_with_a_frozen_clock(self, services, storage) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            pair = await services.ledger.open(tx, principal)
        for _ in range(3):
            async with storage.transaction() as tx:
                nxt = await services.ledger.redeem(tx, pair.refresh)
            assert nxt.expired_at > pair.expired_at
            assert nxt.refreshable_until > pair.refreshable_until
            pair = nxt

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successor_keeps_the_chain_lifetimes(self, services, storage, clock) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            first = await services.ledger.open(
                tx, principal, access_ttl=timedelta(minutes=5), refresh_ttl=timedelta(hours=1)
            )
        clock.advance(minutes=2)
        async with storage.transaction() as tx:
            second = await services.ledger.redeem(tx, first.refresh)

        assert second.expired_at == clock() + timedelta(minutes=5)
        assert second.refreshable_until == clock() + timedelta(hours=1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_consumed_token_is_revoked(self, services, storage) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            first = await services.ledger.open(tx, principal)
        async with storage.transaction() as tx:
            await services.ledger.redeem(tx, first.refresh)

        with pytest.raises(TokenRevoked):
            async with storage.transaction() as tx:
                await services.ledger.redeem(tx, first.refresh)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_token(self, services, storage) -> None:
        with pytest.raises(TokenUnknown):
            async with storage.transaction() as tx:
                await services.ledger.redeem(tx, "never-issued")
        with pytest.raises(TokenUnknown):
            async with storage.transaction() as tx:
                await services.ledger.redeem(tx, "")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_token(self, services, storage, clock) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            pair = await services.ledger.open(tx, principal)
        clock.advance(days=7, seconds=1)

        with pytest.raises(RefreshTokenExpired):
            async with storage.transaction() as tx:
                await services.ledger.redeem(tx, pair.refresh)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_losing_a_rotation_race(self, services, storage) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            pair = await services.ledger.open(tx, principal)
        async with storage.transaction() as tx:
            stale = await services.ledger.lookup(tx, pair.refresh)
        async with storage.transaction() as tx:
            await services.ledger.rotate(tx, stale)

        with pytest.raises(TokenRevoked):
            async with storage.transaction() as tx:
                await services.ledger.rotate(tx, stale)


class TestRevokeAndSweep:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(self, services, storage) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            pair = await services.ledger.open(tx, principal)
        async with storage.transaction() as tx:
            assert await services.ledger.revoke(tx, pair.session_id) is True
            assert await services.ledger.revoke(tx, pair.session_id) is False
            assert await services.ledger.is_live(tx, pair.session_id) is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_revoke_all(self, services, storage) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            await services.ledger.open(tx, principal)
            await services.ledger.open(tx, principal)
        async with storage.transaction() as tx:
            assert await services.ledger.revoke_all(tx, principal.id, RevokeReason.FORCE_LOGOUT) == 2
            assert await services.ledger.revoke_all(tx, principal.id, RevokeReason.FORCE_LOGOUT) == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sweep_removes_only_old_nodes(self, services, storage, clock) -> None:
        principal = await _principal(storage)
        async with storage.transaction() as tx:
            old = await services.ledger.open(tx, principal, refresh_ttl=timedelta(days=1))
        clock.advance(days=5)
        async with storage.transaction() as tx:
            fresh = await services.ledger.open(tx, principal)
        async with storage.transaction() as tx:
            removed = await services.ledger.sweep_expired(tx, timedelta(days=2))
            assert removed == 1
            assert await tx.sessions.find_by_id(old.session_id) is None
            assert await tx.sessions.find_by_id(fresh.session_id) is not None
