"""Inventory core: ledger, projector and the claim/collection protocol."""
