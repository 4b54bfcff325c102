"""
Transaction Ledger

Append-only record of every stock movement for parts and toners. The ledger
is authoritative: an item's status, quantities and claimed/requested fields
are whatever replaying its entries in order produces.

Replay rules:
- ADD      quantity and available grow by the delta, an open request is fulfilled
- CLAIM    available shrinks by the (negative) delta, a claim opens
- REQUEST  a request opens, stock is untouched
- COLLECT  the referenced claim closes as collected
- RETURN   the referenced claim closes and its units go back to available
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Iterable, Optional
import logging

from workshop_portal.exceptions import InvalidTransactionError, ValidationError
from workshop_portal.repositories.base import LedgerRepository
from workshop_portal.services.inventory.types import (
    ItemKind,
    ItemStatus,
    LedgerEntry,
    TransactionType,
)
from workshop_portal.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ItemState:
    """Result of replaying an item's ledger history."""

    quantity: int = 0
    available_quantity: int = 0
    # CLAIM entries not yet collected or returned, oldest first
    open_claims: list[LedgerEntry] = field(default_factory=list)
    collected_claims: list[LedgerEntry] = field(default_factory=list)
    open_request: Optional[LedgerEntry] = None

    @property
    def status(self) -> ItemStatus:
        # Once no unit is left the claims decide, even over an open request
        if self.available_quantity == 0:
            if self.open_claims:
                return ItemStatus.PENDING_COLLECTION
            if self.collected_claims:
                return ItemStatus.COLLECTED
        if self.open_request is not None:
            return ItemStatus.REQUESTED
        return ItemStatus.AVAILABLE

    @property
    def last_claim(self) -> Optional[LedgerEntry]:
        claims = self.open_claims + self.collected_claims
        if not claims:
            return None
        return max(claims, key=lambda claim: (claim.created_at, claim.id or 0))

    def open_claim_for(self, user_id: int) -> Optional[LedgerEntry]:
        """Oldest open claim held by ``user_id``."""
        for claim in self.open_claims:
            if claim.user_id == user_id:
                return claim
        return None

    def cache_fields(self) -> dict:
        """Values for the denormalized item columns."""
        last_claim = self.last_claim
        return {
            "status": self.status,
            "quantity": self.quantity,
            "available_quantity": self.available_quantity,
            "claimed_by_name": last_claim.user_name if last_claim else None,
            "claimed_at": last_claim.created_at if last_claim else None,
            "requested_by_name": self.open_request.user_name if self.open_request else None,
            "requested_at": self.open_request.created_at if self.open_request else None,
        }


def check_delta_sign(entry: LedgerEntry) -> None:
    """Each entry type moves stock in one direction only."""
    delta = entry.quantity_delta
    valid = {
        TransactionType.CLAIM: delta < 0,
        TransactionType.REQUEST: delta == 0,
        TransactionType.COLLECT: delta == 0,
        TransactionType.RETURN: delta > 0,
        TransactionType.ADD: delta > 0,
    }[entry.type]
    if not valid:
        raise InvalidTransactionError(
            f"{entry.type.value} entry cannot carry quantity delta {delta}"
        )


def _pop_open_claim(state: ItemState, entry: LedgerEntry) -> LedgerEntry:
    for index, claim in enumerate(state.open_claims):
        if claim.id == entry.claim_id:
            return state.open_claims.pop(index)
    raise InvalidTransactionError(
        f"{entry.type.value} on item {entry.item_id} references claim {entry.claim_id}, "
        "which is not open"
    )


def apply_entry(state: ItemState, entry: LedgerEntry) -> ItemState:
    """Fold one entry into ``state`` in place.

    Raises:
        InvalidTransactionError: if the entry breaks a ledger invariant
    """
    check_delta_sign(entry)

    if entry.type == TransactionType.ADD:
        state.quantity += entry.quantity_delta
        state.available_quantity += entry.quantity_delta
        state.open_request = None
    elif entry.type == TransactionType.CLAIM:
        state.available_quantity += entry.quantity_delta
        state.open_claims.append(entry)
    elif entry.type == TransactionType.REQUEST:
        state.open_request = entry
    elif entry.type == TransactionType.COLLECT:
        state.collected_claims.append(_pop_open_claim(state, entry))
    elif entry.type == TransactionType.RETURN:
        claim = _pop_open_claim(state, entry)
        if entry.quantity_delta != -claim.quantity_delta:
            raise InvalidTransactionError(
                f"RETURN of claim {claim.id} must restore {-claim.quantity_delta} unit(s), "
                f"not {entry.quantity_delta}"
            )
        state.available_quantity += entry.quantity_delta

    if not 0 <= state.available_quantity <= state.quantity:
        raise InvalidTransactionError(
            f"{entry.type.value} on item {entry.item_id} would leave "
            f"{state.available_quantity} of {state.quantity} unit(s) available"
        )
    return state


def replay(entries: Iterable[LedgerEntry]) -> ItemState:
    """Rebuild an item's state from its entries in insertion order."""
    state = ItemState()
    for entry in entries:
        apply_entry(state, entry)
    return state


def newest_first(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Sort by created_at descending; equal timestamps keep insertion order."""
    return sorted(entries, key=lambda entry: entry.created_at, reverse=True)


class TransactionLedger:
    """Validating front of a LedgerRepository."""

    def __init__(self, repository: LedgerRepository, clock: Callable = utcnow):
        self.repository = repository
        self.clock = clock

    async def append(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Validate an entry against the item's replayed history and persist it.

        Args:
            entry: The new entry, without an id

        Returns:
            The stored entry with its id

        Raises:
            InvalidTransactionError: if the entry breaks a ledger invariant
        """
        if entry.id is not None:
            raise InvalidTransactionError(f"Ledger entry {entry.id} has already been written")

        state = replay(await self.history(entry.item_id))
        apply_entry(state, entry)

        stored = await self.repository.append(entry)
        logger.info(
            f"Ledger {stored.type.value} #{stored.id} item={stored.item_id} "
            f"user={stored.user_id} delta={stored.quantity_delta}",
            extra={"item_id": stored.item_id, "user_id": stored.user_id},
        )
        return stored

    async def history(self, item_id: str) -> list[LedgerEntry]:
        """All entries for an item, oldest first."""
        return await self.repository.query(item_id=item_id)

    async def query_recent(
        self,
        hours: int,
        types: Optional[Iterable[TransactionType]] = None,
        user_id: Optional[int] = None,
        item_kind: Optional[ItemKind] = None,
    ) -> list[LedgerEntry]:
        """
        Entries created within the last ``hours``, newest first.

        Args:
            hours: Size of the window, must be positive
            types: Only these entry types
            user_id: Only entries for this user
            item_kind: Only entries for parts or only for toners

        Returns:
            Matching entries sorted by created_at descending, ties in insertion order
        """
        if hours <= 0:
            raise ValidationError("hours must be a positive number")
        since = self.clock() - timedelta(hours=hours)
        entries = await self.repository.query(
            since=since, types=types, user_id=user_id, item_kind=item_kind
        )
        return newest_first(entries)
