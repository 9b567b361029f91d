"""Idempotency ledger for Paystack transaction references.

``paystack_events/{reference}`` exists iff the reference has been processed.
The entry is written with Firestore's create-if-absent, so when two
deliveries of the same event race, exactly one commit succeeds and the
other sees ``AlreadyExists``. Callers can stage their own writes into the
same batch so the entry and the projection land together or not at all.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore

logger = logging.getLogger("kidhub.ledger")

StageWrites = Callable[[firestore.WriteBatch], None]


class ClaimOutcome(str, enum.Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"


class IdempotencyLedger:

    def __init__(self, db: firestore.Client, collection: str = "paystack_events"):
        self.db = db
        self.collection = collection

    def entry_ref(self, reference: str):
        return self.db.collection(self.collection).document(reference)

    def claim(
        self,
        reference: str,
        *,
        email: Optional[str],
        amount: int,
        stage: Optional[StageWrites] = None,
    ) -> ClaimOutcome:
        """Record ``reference`` once; commit ``stage``'s writes atomically with it."""
        batch = self.db.batch()
        batch.create(
            self.entry_ref(reference),
            {
                "createdAt": firestore.SERVER_TIMESTAMP,
                "email": email,
                "amount": amount,
            },
        )
        if stage is not None:
            stage(batch)

        try:
            batch.commit()
        except AlreadyExists:
            logger.info("Duplicate delivery for reference=%s", reference)
            return ClaimOutcome.DUPLICATE

        return ClaimOutcome.ACCEPTED
