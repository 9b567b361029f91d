"""Apply verified events to Firestore.

Payment events become SubscriptionState fields on ``users/{uid}``; location
pings become a history row plus the student's ``lastLocation`` snapshot.
Nothing here runs until every gate upstream has passed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from google.cloud import firestore

from ..errors import DuplicateError
from ..models import PaystackChargeData, PingRequest
from .classifier import Classification
from .ledger import ClaimOutcome, IdempotencyLedger
from .sessions import TrackingSession

logger = logging.getLogger("kidhub.projector")

USER_AGENT_MAX_LENGTH = 180

PROJECTED = "processed"
NO_MATCH = "no_match"


@dataclass
class PaymentProjection:
    status: str  # processed | no_match
    plan: str
    user_id: Optional[str] = None


def subscription_updates(
    classification: Classification,
    reference: Optional[str],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Merge payload for the user's SubscriptionState.

    ``subscriptionEndsAt`` is left alone for pending plans, cleared for plans
    that never expire, and set to now + duration otherwise.
    """
    updates: Dict[str, Any] = {
        "plan": classification.plan,
        "status": classification.status,
        "lastPaymentRef": reference,
        "updatedAt": firestore.SERVER_TIMESTAMP,
    }
    if not classification.grants_entitlement:
        return updates

    updates["trialEndsAt"] = None
    if classification.days:
        current = now or datetime.now(timezone.utc)
        updates["subscriptionEndsAt"] = current + timedelta(days=classification.days)
    else:
        updates["subscriptionEndsAt"] = None
    return updates


class SubscriptionProjector:
    """Projects ``charge.success`` events onto user records."""

    def __init__(self, db: firestore.Client, ledger: IdempotencyLedger):
        self.db = db
        self.ledger = ledger

    def find_user_ref(self, email: str):
        # Emails are not unique-constrained; first match wins.
        docs = list(
            self.db.collection("users").where("email", "==", email).limit(2).stream()
        )
        if not docs:
            return None
        if len(docs) > 1:
            logger.warning("Multiple users share a billing email; using uid=%s", docs[0].id)
        return docs[0].reference

    def apply(
        self,
        charge: PaystackChargeData,
        classification: Classification,
        now: Optional[datetime] = None,
    ) -> PaymentProjection:
        """Claim the reference and write the subscription in one commit.

        Raises DuplicateError when the reference was already processed.
        """
        email = charge.email
        user_ref = self.find_user_ref(email) if email else None
        updates = subscription_updates(classification, charge.reference, now)

        def stage(batch: firestore.WriteBatch) -> None:
            batch.set(user_ref, updates, merge=True)

        if charge.reference:
            outcome = self.ledger.claim(
                charge.reference,
                email=email,
                amount=charge.amount,
                stage=stage if user_ref is not None else None,
            )
            if outcome is ClaimOutcome.DUPLICATE:
                raise DuplicateError(details={"reference": charge.reference})
        elif user_ref is not None:
            logger.warning("charge.success without reference; applying without dedupe")
            user_ref.set(updates, merge=True)

        if user_ref is None:
            logger.warning("No matching user for paid charge reference=%s", charge.reference)
            return PaymentProjection(status=NO_MATCH, plan=classification.plan)

        logger.info(
            "Paystack activated uid=%s plan=%s amount=%s reference=%s source=%s",
            user_ref.id, classification.plan, charge.amount, charge.reference, classification.source,
        )
        return PaymentProjection(status=PROJECTED, plan=classification.plan, user_id=user_ref.id)


class LocationProjector:
    """Appends pings to history and refreshes the student's snapshot."""

    def __init__(self, db: firestore.Client):
        self.db = db

    def student_ref(self, org_id: str, student_id: str):
        return (
            self.db.collection("orgs")
            .document(org_id)
            .collection("students")
            .document(student_id)
        )

    def apply(
        self,
        session: TrackingSession,
        ping: PingRequest,
        user_agent: str = "",
    ) -> str:
        """Write the history row and snapshot atomically; return the row id."""
        student_ref = self.student_ref(session.org_id, session.student_id)
        history_ref = student_ref.collection("locations").document()

        batch = self.db.batch()
        batch.create(
            history_ref,
            {
                "sid": session.session_id,
                "orgId": session.org_id,
                "studentId": session.student_id,
                "lat": ping.lat,
                "lng": ping.lng,
                "acc": ping.acc,
                "createdAt": firestore.SERVER_TIMESTAMP,
                "ua": (user_agent or "")[:USER_AGENT_MAX_LENGTH],
            },
        )
        batch.set(
            student_ref,
            {
                "lastLocation": {
                    "lat": ping.lat,
                    "lng": ping.lng,
                    "acc": ping.acc,
                    "sid": session.session_id,
                    "updatedAt": firestore.SERVER_TIMESTAMP,
                },
            },
            merge=True,
        )
        batch.commit()

        logger.debug("Ping stored sid=%s student=%s", session.session_id, session.student_id)
        return history_ref.id
