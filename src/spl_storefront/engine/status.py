"""Transaction status enums and the central transition table.

``status`` is the authoritative payment lifecycle::

    pending ──(payment succeeded)──▶ processing ──(fulfilled)──▶ completed
       │                                 │
       └──(payment failed/canceled)──▶ failed ◀──(transfer failure)┘
                                         │
                                         └──(explicit retry)──▶ pending | processing

``blockchain_status`` is the canonical token-delivery state and
``fulfillment_status`` is a read-only view of it.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spl_storefront.engine.models.transaction import Transaction


class PaymentStatus(enum.StrEnum):
    """Overall purchase lifecycle (``transactions.status``)."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class BlockchainStatus(enum.StrEnum):
    """Token transfer lifecycle (``transactions.blockchain_status``)."""

    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class FulfillmentStatus(enum.StrEnum):
    """Admin-facing fulfillment state, derived from ``BlockchainStatus``."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookProcessingStatus(enum.StrEnum):
    """Outcome of the local webhook handler for one delivery."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    # retry only
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING}),
    PaymentStatus.COMPLETED: frozenset(),
}

_FULFILLMENT_VIEW: dict[BlockchainStatus, FulfillmentStatus] = {
    BlockchainStatus.PENDING: FulfillmentStatus.PENDING,
    BlockchainStatus.PROCESSING: FulfillmentStatus.PROCESSING,
    BlockchainStatus.CONFIRMED: FulfillmentStatus.COMPLETED,
    BlockchainStatus.FAILED: FulfillmentStatus.FAILED,
}

_BLOCKCHAIN_FOR_FULFILLMENT: dict[FulfillmentStatus, BlockchainStatus] = {
    v: k for k, v in _FULFILLMENT_VIEW.items()
}


def can_transition(source: str, target: str) -> bool:
    """Return True if ``status`` may move from *source* to *target*."""
    try:
        return PaymentStatus(target) in TRANSITIONS[PaymentStatus(source)]
    except ValueError:
        return False


def sources_for(target: PaymentStatus) -> list[PaymentStatus]:
    """All statuses that may legally move to *target*, in declaration order."""
    return [src for src in PaymentStatus if target in TRANSITIONS[src]]


def fulfillment_status_for(blockchain_status: str) -> FulfillmentStatus:
    """Derive the fulfillment view from a blockchain status."""
    return _FULFILLMENT_VIEW[BlockchainStatus(blockchain_status)]


def blockchain_status_for(fulfillment_status: str) -> BlockchainStatus:
    """Map an admin-requested fulfillment status back onto the canonical column."""
    return _BLOCKCHAIN_FOR_FULFILLMENT[FulfillmentStatus(fulfillment_status)]


def check_invariants(tx: Transaction) -> list[str]:
    """Return human-readable descriptions of every status invariant *tx* breaks.

    An empty list means the row is consistent.
    """
    problems: list[str] = []
    status = tx.status
    chain = tx.blockchain_status

    if status == PaymentStatus.COMPLETED:
        if chain != BlockchainStatus.CONFIRMED:
            problems.append(f"completed transaction has blockchain_status={chain}")
        if not tx.solana_transaction_signature:
            problems.append("completed transaction has no transfer signature")
    elif chain == BlockchainStatus.CONFIRMED:
        problems.append(f"blockchain_status=confirmed but status={status}")

    if status == PaymentStatus.FAILED and chain not in (
        BlockchainStatus.FAILED,
        BlockchainStatus.PENDING,
    ):
        problems.append(f"failed transaction has blockchain_status={chain}")

    if status == PaymentStatus.PROCESSING and chain not in (
        BlockchainStatus.PROCESSING,
        BlockchainStatus.PENDING,
    ):
        problems.append(f"processing transaction has blockchain_status={chain}")

    if status == PaymentStatus.PENDING and chain != BlockchainStatus.PENDING:
        problems.append(f"pending transaction has blockchain_status={chain}")

    expected = _FULFILLMENT_VIEW.get(chain)
    if expected is not None and tx.fulfillment_status != expected:
        problems.append(
            f"fulfillment_status={tx.fulfillment_status} does not match blockchain_status={chain}"
        )
    return problems
