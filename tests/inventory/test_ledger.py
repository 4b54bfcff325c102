"""
Tests for the transaction ledger fold and TransactionLedger.
"""

from datetime import datetime, timedelta, timezone

import pytest

from workshop_portal.exceptions import InvalidTransactionError, ValidationError
from workshop_portal.repositories.memory import MemoryLedgerRepository
from workshop_portal.services.inventory.ledger import (
    ItemState,
    TransactionLedger,
    apply_entry,
    newest_first,
    replay,
)
from workshop_portal.services.inventory.types import (
    ItemKind,
    ItemStatus,
    LedgerEntry,
    TransactionType,
)

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def entry(type, delta, user_id=1, id=None, claim_id=None, minutes=0, item_id="p1", kind=ItemKind.PART):
    return LedgerEntry(
        id=id,
        item_id=item_id,
        item_kind=kind,
        type=type,
        user_id=user_id,
        user_name=f"User {user_id}",
        quantity_delta=delta,
        created_at=T0 + timedelta(minutes=minutes),
        claim_id=claim_id,
    )


class TestReplay:
    """The fold that rebuilds item state from history."""

    def test_add_sets_quantity_and_availability(self):
        state = replay([entry(TransactionType.ADD, 3, id=1)])
        assert state.quantity == 3
        assert state.available_quantity == 3
        assert state.status == ItemStatus.AVAILABLE

    def test_claim_reduces_availability_and_opens_claim(self):
        state = replay([
            entry(TransactionType.ADD, 1, id=1),
            entry(TransactionType.CLAIM, -1, id=2, minutes=5),
        ])
        assert state.available_quantity == 0
        assert [c.id for c in state.open_claims] == [2]
        assert state.status == ItemStatus.PENDING_COLLECTION
        assert state.cache_fields()["claimed_by_name"] == "User 1"

    def test_collect_closes_referenced_claim(self):
        state = replay([
            entry(TransactionType.ADD, 1, id=1),
            entry(TransactionType.CLAIM, -1, id=2),
            entry(TransactionType.COLLECT, 0, id=3, claim_id=2),
        ])
        assert state.open_claims == []
        assert state.status == ItemStatus.COLLECTED
        # Collected claims still name the last claimant
        assert state.cache_fields()["claimed_by_name"] == "User 1"

    def test_return_restores_unit_and_clears_claimant(self):
        state = replay([
            entry(TransactionType.ADD, 1, id=1),
            entry(TransactionType.CLAIM, -1, id=2),
            entry(TransactionType.RETURN, 1, id=3, claim_id=2),
        ])
        assert state.available_quantity == 1
        assert state.status == ItemStatus.AVAILABLE
        assert state.cache_fields()["claimed_by_name"] is None

    def test_request_takes_priority_in_status(self):
        state = replay([
            entry(TransactionType.ADD, 1, id=1),
            entry(TransactionType.REQUEST, 0, id=2, user_id=7),
        ])
        assert state.status == ItemStatus.REQUESTED
        assert state.cache_fields()["requested_by_name"] == "User 7"

    def test_claims_outrank_request_once_stock_is_gone(self):
        entries = [
            entry(TransactionType.ADD, 1, id=1),
            entry(TransactionType.REQUEST, 0, id=2, user_id=7),
            entry(TransactionType.CLAIM, -1, id=3, user_id=8),
        ]
        state = replay(entries)
        assert state.status == ItemStatus.PENDING_COLLECTION
        assert state.open_request is not None

        state = replay([*entries, entry(TransactionType.COLLECT, 0, id=4, user_id=8, claim_id=3)])
        assert state.status == ItemStatus.COLLECTED
        assert state.cache_fields()["requested_by_name"] == "User 7"

    def test_add_fulfils_open_request(self):
        state = replay([
            entry(TransactionType.ADD, 1, id=1),
            entry(TransactionType.REQUEST, 0, id=2),
            entry(TransactionType.ADD, 2, id=3),
        ])
        assert state.open_request is None
        assert state.quantity == 3
        assert state.status == ItemStatus.AVAILABLE

    def test_two_claimants_close_independently(self):
        state = replay([
            entry(TransactionType.ADD, 2, id=1),
            entry(TransactionType.CLAIM, -1, id=2, user_id=1),
            entry(TransactionType.CLAIM, -1, id=3, user_id=2),
            entry(TransactionType.COLLECT, 0, id=4, user_id=1, claim_id=2),
        ])
        assert [c.user_id for c in state.open_claims] == [2]
        assert state.open_claim_for(1) is None
        assert state.open_claim_for(2).id == 3
        assert state.status == ItemStatus.PENDING_COLLECTION

    def test_empty_history(self):
        state = replay([])
        assert state.status == ItemStatus.AVAILABLE
        assert state.quantity == 0


class TestApplyEntryValidation:
    """Entries that would break the ledger are rejected."""

    @pytest.mark.parametrize(
        "type,delta",
        [
            (TransactionType.CLAIM, 0),
            (TransactionType.CLAIM, 1),
            (TransactionType.REQUEST, -1),
            (TransactionType.COLLECT, 1),
            (TransactionType.RETURN, 0),
            (TransactionType.ADD, 0),
            (TransactionType.ADD, -2),
        ],
    )
    def test_delta_sign_must_match_type(self, type, delta):
        state = replay([entry(TransactionType.ADD, 5, id=1)])
        with pytest.raises(InvalidTransactionError):
            apply_entry(state, entry(type, delta, id=2, claim_id=1))

    def test_claim_beyond_stock_rejected(self):
        state = replay([
            entry(TransactionType.ADD, 1, id=1),
            entry(TransactionType.CLAIM, -1, id=2),
        ])
        with pytest.raises(InvalidTransactionError):
            apply_entry(state, entry(TransactionType.CLAIM, -1, id=3))

    def test_collect_without_open_claim_rejected(self):
        state = replay([entry(TransactionType.ADD, 1, id=1)])
        with pytest.raises(InvalidTransactionError):
            apply_entry(state, entry(TransactionType.COLLECT, 0, id=2, claim_id=99))

    def test_second_collect_of_same_claim_rejected(self):
        state = replay([
            entry(TransactionType.ADD, 1, id=1),
            entry(TransactionType.CLAIM, -1, id=2),
            entry(TransactionType.COLLECT, 0, id=3, claim_id=2),
        ])
        with pytest.raises(InvalidTransactionError):
            apply_entry(state, entry(TransactionType.COLLECT, 0, id=4, claim_id=2))

    def test_return_must_restore_claimed_units(self):
        state = replay([
            entry(TransactionType.ADD, 3, id=1),
            entry(TransactionType.CLAIM, -1, id=2),
        ])
        with pytest.raises(InvalidTransactionError):
            apply_entry(state, entry(TransactionType.RETURN, 2, id=3, claim_id=2))

    def test_availability_stays_within_quantity_for_every_prefix(self):
        history = [
            entry(TransactionType.ADD, 2, id=1),
            entry(TransactionType.CLAIM, -1, id=2, user_id=1),
            entry(TransactionType.CLAIM, -1, id=3, user_id=2),
            entry(TransactionType.RETURN, 1, id=4, user_id=1, claim_id=2),
            entry(TransactionType.COLLECT, 0, id=5, user_id=2, claim_id=3),
            entry(TransactionType.ADD, 4, id=6),
        ]
        state = ItemState()
        for e in history:
            apply_entry(state, e)
            assert 0 <= state.available_quantity <= state.quantity


class TestTransactionLedger:
    """Append and query through a repository."""

    @pytest.fixture
    def ledger(self, clock):
        return TransactionLedger(MemoryLedgerRepository(), clock)

    @pytest.mark.asyncio
    async def test_append_assigns_increasing_ids(self, ledger):
        first = await ledger.append(entry(TransactionType.ADD, 2))
        second = await ledger.append(entry(TransactionType.CLAIM, -1))
        assert first.id == 1
        assert second.id == 2
        assert [e.id for e in await ledger.history("p1")] == [1, 2]

    @pytest.mark.asyncio
    async def test_append_rejects_invalid_entry_without_writing(self, ledger):
        await ledger.append(entry(TransactionType.ADD, 1))
        with pytest.raises(InvalidTransactionError):
            await ledger.append(entry(TransactionType.RETURN, 1, claim_id=5))
        assert len(await ledger.history("p1")) == 1

    @pytest.mark.asyncio
    async def test_append_rejects_already_written_entry(self, ledger):
        stored = await ledger.append(entry(TransactionType.ADD, 1))
        with pytest.raises(InvalidTransactionError):
            await ledger.append(stored)

    @pytest.mark.asyncio
    async def test_query_recent_window_and_filters(self, ledger, clock):
        """Only A's claims and requests from the last 12 hours, newest first."""
        await ledger.append(entry(TransactionType.ADD, 5, user_id=9, minutes=-14 * 60))
        await ledger.append(entry(TransactionType.CLAIM, -1, user_id=1, minutes=-13 * 60))
        await ledger.append(entry(TransactionType.CLAIM, -1, user_id=1, minutes=-60))
        await ledger.append(entry(TransactionType.CLAIM, -1, user_id=2, minutes=-30))
        await ledger.append(entry(TransactionType.REQUEST, 0, user_id=1, minutes=-10))

        result = await ledger.query_recent(
            12, types=[TransactionType.CLAIM, TransactionType.REQUEST], user_id=1
        )

        assert [e.type for e in result] == [TransactionType.REQUEST, TransactionType.CLAIM]
        assert all(e.user_id == 1 for e in result)
        assert all(e.created_at >= clock() - timedelta(hours=12) for e in result)

    @pytest.mark.asyncio
    async def test_query_recent_filters_by_kind(self, ledger):
        await ledger.append(entry(TransactionType.ADD, 1, item_id="p1"))
        await ledger.append(entry(TransactionType.ADD, 1, item_id="t1", kind=ItemKind.TONER))
        result = await ledger.query_recent(1, item_kind=ItemKind.TONER)
        assert [e.item_id for e in result] == ["t1"]

    @pytest.mark.asyncio
    async def test_query_recent_rejects_non_positive_hours(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.query_recent(0)


def test_newest_first_keeps_insertion_order_for_ties():
    a = entry(TransactionType.ADD, 1, id=1)
    b = entry(TransactionType.CLAIM, -1, id=2)
    c = entry(TransactionType.CLAIM, -1, id=3, minutes=1)
    assert [e.id for e in newest_first([a, b, c])] == [3, 1, 2]
