# Overview: Service-layer operations for user-submitted card data and its review.

from __future__ import annotations

from ..extensions import db
from ..models import Card, CardSubmission
from ..time_utils import utcnow
from . import activity_service, catalog_service
from .catalog_service import CatalogError


class SubmissionError(Exception):
    """Raised for submission workflow errors."""
    pass


class SubmissionNotFound(SubmissionError):
    pass


VALID_SOURCES = ("mobile", "admin", "manual")
MOBILE_USER = "mobile_user"


def submit_card(card_data: dict, submitted_by: str | None, images: list | None = None, source: str = "manual") -> CardSubmission:
    """Queue card data for admin review. Anonymous mobile uploads are attributed to MOBILE_USER."""
    if not isinstance(card_data, dict) or not card_data.get("name"):
        raise SubmissionError("card.name is required")
    if source not in VALID_SOURCES:
        raise SubmissionError(f"source must be one of {list(VALID_SOURCES)}")

    submission = CardSubmission(
        card_data=card_data,
        images=list(images or []),
        source=source,
        status="pending",
        submitted_by=str(submitted_by) if submitted_by else MOBILE_USER,
    )
    db.session.add(submission)
    db.session.flush()

    activity_service.log_activity(
        user_id=submission.submitted_by,
        action="submission_created",
        entity_type="submission",
        entity_id=str(submission.id),
        details={"cardName": card_data.get("name"), "source": source},
        commit=False,
    )
    db.session.commit()
    return submission


def list_submissions(status: str | None = None) -> list[CardSubmission]:
    query = db.session.query(CardSubmission)
    if status:
        query = query.filter(CardSubmission.status == status)
    return query.order_by(CardSubmission.submitted_at.desc(), CardSubmission.id.desc()).all()


def _get_pending(submission_id: int) -> CardSubmission:
    submission = db.session.get(CardSubmission, submission_id)
    if not submission:
        raise SubmissionNotFound(f"Submission {submission_id} not found")
    if submission.status != "pending":
        raise SubmissionError(f"Submission {submission_id} is already {submission.status}")
    return submission


def approve_submission(submission_id: int, actor_id: str, overrides: dict | None = None) -> Card:
    """
    Publish a pending submission as a catalog card.

    Card creation, the status change and the audit entry commit together.
    """
    submission = _get_pending(submission_id)
    data = {**submission.card_data, **(overrides or {})}

    try:
        card = catalog_service.create_card(data, actor_id, commit=False)
    except CatalogError as exc:
        db.session.rollback()
        raise SubmissionError(str(exc))

    submission.status = "approved"
    submission.reviewed_by = str(actor_id)
    submission.reviewed_at = utcnow()
    submission.card_id = card.id

    activity_service.log_activity(
        user_id=actor_id,
        action="submission_approved",
        entity_type="submission",
        entity_id=str(submission_id),
        details={"cardId": card.id, "cardName": card.name},
        commit=False,
    )
    db.session.commit()
    return card


def reject_submission(submission_id: int, actor_id: str, reason: str) -> CardSubmission:
    if not reason or not reason.strip():
        raise SubmissionError("reason is required")
    submission = _get_pending(submission_id)

    submission.status = "rejected"
    submission.reviewed_by = str(actor_id)
    submission.reviewed_at = utcnow()
    submission.rejection_reason = reason.strip()

    activity_service.log_activity(
        user_id=actor_id,
        action="submission_rejected",
        entity_type="submission",
        entity_id=str(submission_id),
        details={"reason": submission.rejection_reason},
        commit=False,
    )
    db.session.commit()
    return submission
