"""Unit tests for the in-memory store's transaction handling."""

import copy

import pytest

from authgate.core.roles import RoleType
from authgate.stores.records import AuthEvent


async def _create(storage, email="mem@example.com"):
    async with storage.transaction() as tx:
        return await tx.credentials.create(
            role_type=RoleType.QA,
            tenant_scope=None,
            provider="local",
            provider_key=email,
            password_hash="x",
            profile_fields={},
        )


class TestMemoryTransactions:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rollback_restores_records_and_events(self, storage) -> None:
        async with storage.transaction() as tx:
            await tx.events.append(AuthEvent(event_type="join"))

        with pytest.raises(RuntimeError):
            async with storage.transaction() as tx:
                await tx.credentials.create(
                    role_type=RoleType.QA,
                    tenant_scope=None,
                    provider="local",
                    provider_key="gone@example.com",
                    password_hash="x",
                    profile_fields={},
                )
                await tx.events.append(AuthEvent(event_type="join_failed"))
                raise RuntimeError("boom")

        async with storage.transaction() as tx:
            assert await tx.credentials.list_principals() == []
            events = await tx.events.list_events()
        assert [e.event_type for e in events] == ["join"]

        # the identity released by the rollback can be taken again
        assert (await _create(storage, "gone@example.com")).id

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_event_log_is_not_copied_per_transaction(self, storage, monkeypatch) -> None:
        async with storage.transaction() as tx:
            for _ in range(3):
                await tx.events.append(AuthEvent(event_type="login"))

        copied = []
        real_deepcopy = copy.deepcopy

        def spy(value, *args, **kwargs):
            copied.append(value)
            return real_deepcopy(value, *args, **kwargs)

        monkeypatch.setattr(copy, "deepcopy", spy)
        await _create(storage)

        assert all(value is not storage._state.events for value in copied)
