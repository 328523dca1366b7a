"""Core building blocks for the PropPicks wager ledger.

This package contains pure, storage-agnostic pieces:

- ``ledger_types`` : closed enums (bet mode, outcome) and ledger DTOs
- ``odds_math``    : American-odds parsing and unit settlement

Nothing in this package imports from ``backend.services`` or ``backend.models``.
All modules are side-effect-free and unit-testable in isolation.
"""
