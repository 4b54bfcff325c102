"""
Tests for the viewer projections: available lists, activity and collections.
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest
import pytest_asyncio

from workshop_portal.exceptions import NotFoundError, ValidationError
from workshop_portal.services.inventory.projector import is_available, matches
from workshop_portal.services.inventory.types import (
    ItemKind,
    TonerColor,
    TransactionType,
)


@pytest_asyncio.fixture
async def stock(inventory, admin):
    fuser = await inventory.add_part(admin, "Fuser Unit", "A0XX-R710-00", quantity=1,
                                     for_device_models=["bizhub C300i"])
    drum = await inventory.add_part(admin, "Drum Unit", "DR-316K", quantity=2)
    toner = await inventory.add_toner(admin, "TN-328K", "ACV1150", TonerColor.BLACK, quantity=1)
    return SimpleNamespace(fuser=fuser, drum=drum, toner=toner)


class TestAvailable:
    @pytest.mark.asyncio
    async def test_items_without_stock_are_hidden(self, inventory, stock, engineer_a):
        await inventory.claim(stock.fuser.id, engineer_a)

        ids = [item.id for item in await inventory.projector.available_items()]

        assert stock.fuser.id not in ids
        assert stock.drum.id in ids
        assert stock.toner.id in ids

    @pytest.mark.asyncio
    async def test_filter_by_kind(self, inventory, stock):
        toners = await inventory.projector.available_items(kind=ItemKind.TONER)
        assert [item.id for item in toners] == [stock.toner.id]

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, inventory, stock):
        found = await inventory.projector.available_items(term="dr-316")
        assert [item.id for item in found] == [stock.drum.id]

    @pytest.mark.asyncio
    async def test_search_covers_device_models(self, inventory, stock):
        found = await inventory.projector.list_items(term="C300I")
        assert [item.id for item in found] == [stock.fuser.id]

    @pytest.mark.asyncio
    async def test_blank_term_matches_everything(self, inventory, stock):
        assert len(await inventory.projector.list_items(term="   ")) == 3

    @pytest.mark.asyncio
    async def test_get_unknown_item(self, inventory):
        with pytest.raises(NotFoundError):
            await inventory.projector.get_item("nope")


class TestMyActivity:
    @pytest.mark.asyncio
    async def test_open_claim_stays_visible_past_window(self, inventory, stock, clock, engineer_a):
        claim = await inventory.claim(stock.fuser.id, engineer_a)
        clock.advance(hours=13)
        request = await inventory.request(stock.drum.id, engineer_a)

        rows = await inventory.projector.my_activity(engineer_a.id, hours=12)

        assert [row.entry.id for row in rows] == [request.entry.id, claim.entry.id]
        assert rows[1].pending_collection is True
        assert rows[0].pending_collection is False

    @pytest.mark.asyncio
    async def test_collected_claim_ages_out(self, inventory, stock, clock, engineer_a):
        await inventory.claim(stock.fuser.id, engineer_a)
        clock.advance(hours=2)
        await inventory.collect(stock.fuser.id, engineer_a)

        rows = await inventory.projector.my_activity(engineer_a.id)
        assert len(rows) == 1
        assert rows[0].pending_collection is False

        clock.advance(hours=11)
        assert await inventory.projector.my_activity(engineer_a.id) == []

    @pytest.mark.asyncio
    async def test_only_own_entries(self, inventory, stock, engineer_a, engineer_b):
        await inventory.claim(stock.drum.id, engineer_a)
        await inventory.claim(stock.drum.id, engineer_b)

        rows = await inventory.projector.my_activity(engineer_b.id)
        assert [row.entry.user_id for row in rows] == [engineer_b.id]

        everyone = await inventory.projector.my_activity(None)
        assert {row.entry.user_id for row in everyone} == {engineer_a.id, engineer_b.id}

    @pytest.mark.asyncio
    async def test_search_and_kind_filter(self, inventory, stock, engineer_a):
        await inventory.claim(stock.drum.id, engineer_a)
        await inventory.claim(stock.toner.id, engineer_a)

        toner_rows = await inventory.projector.my_activity(engineer_a.id, kind=ItemKind.TONER)
        assert [row.item.id for row in toner_rows] == [stock.toner.id]

        drum_rows = await inventory.projector.my_activity(engineer_a.id, term="drum")
        assert [row.item.id for row in drum_rows] == [stock.drum.id]

    @pytest.mark.asyncio
    async def test_rejects_non_positive_window(self, inventory, engineer_a):
        with pytest.raises(ValidationError):
            await inventory.projector.my_activity(engineer_a.id, hours=0)


class TestCollectionsQueue:
    @pytest.mark.asyncio
    async def test_claim_moves_from_pending_to_collected(self, inventory, stock, clock, engineer_a):
        claim = await inventory.claim(stock.fuser.id, engineer_a)
        clock.advance(hours=20)

        rows = await inventory.projector.collections_queue(engineer_a.id)
        assert [(row.entry.id, row.pending_collection) for row in rows] == [(claim.entry.id, True)]

        collect = await inventory.collect(stock.fuser.id, engineer_a)
        rows = await inventory.projector.collections_queue(engineer_a.id)
        assert [row.entry.id for row in rows] == [collect.entry.id]
        assert rows[0].entry.type == TransactionType.COLLECT

        clock.advance(hours=13)
        assert await inventory.projector.collections_queue(engineer_a.id) == []

    @pytest.mark.asyncio
    async def test_returned_claim_leaves_queue(self, inventory, stock, engineer_a):
        await inventory.claim(stock.fuser.id, engineer_a)
        await inventory.return_item(stock.fuser.id, engineer_a, "Not needed")

        assert await inventory.projector.collections_queue(engineer_a.id) == []

    @pytest.mark.asyncio
    async def test_requests_are_not_queued(self, inventory, stock, engineer_a):
        await inventory.request(stock.drum.id, engineer_a)
        assert await inventory.projector.collections_queue(engineer_a.id) == []

    @pytest.mark.asyncio
    async def test_history_outside_window_is_not_read(
        self, inventory, store, stock, clock, engineer_a, monkeypatch
    ):
        old_claim = await inventory.claim(stock.drum.id, engineer_a)
        await inventory.claim(stock.fuser.id, engineer_a)
        await inventory.collect(stock.fuser.id, engineer_a)
        clock.advance(hours=24)

        windows = []
        query = store.ledger.query

        async def recording_query(**kwargs):
            windows.append(kwargs.get("since"))
            return await query(**kwargs)

        monkeypatch.setattr(store.ledger, "query", recording_query)
        rows = await inventory.projector.collections_queue(engineer_a.id)

        assert windows == [clock() - timedelta(hours=12)]
        assert [(row.entry.id, row.pending_collection) for row in rows] == [(old_claim.entry.id, True)]

    @pytest.mark.asyncio
    async def test_open_claims_by_user_and_kind(self, inventory, store, stock, engineer_a, engineer_b):
        drum_a = await inventory.claim(stock.drum.id, engineer_a)
        drum_b = await inventory.claim(stock.drum.id, engineer_b)
        toner_a = await inventory.claim(stock.toner.id, engineer_a)
        await inventory.return_item(stock.drum.id, engineer_b, "Wrong model")

        assert [e.id for e in await store.ledger.open_claims()] == [drum_a.entry.id, toner_a.entry.id]
        assert drum_b.entry.id not in [e.id for e in await store.ledger.open_claims(user_id=engineer_b.id)]
        assert [e.id for e in await store.ledger.open_claims(item_kind=ItemKind.TONER)] == [toner_a.entry.id]


class TestMatching:
    def test_matches_toner_color(self):
        toner = SimpleNamespace(
            display_name="TN-328K (Black)",
            search_fields=lambda: ("t1", "TN-328K", "ACV1150", "BLACK"),
        )
        assert matches(toner, "acv")
        assert not matches(toner, "cyan")

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ValueError):
            is_available(SimpleNamespace(kind="PRINTER"))
