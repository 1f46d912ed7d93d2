# Overview: Flask API routes for card submissions and their admin review.

# backend/storefront/routes/submissions.py
"""
Card Submission Routes

DESIGN:
- Anyone (including the anonymous mobile scanner) may submit card data;
  submissions are inert until an admin approves them
- Approval publishes the card with empty normal/foil inventory
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import optional_auth, require_admin, require_auth
from ..services import submission_service
from ..services.rate_limit_service import rate_limited
from ..services.submission_service import SubmissionError, SubmissionNotFound


submissions_bp = Blueprint("submissions", __name__, url_prefix="/api/submissions")


@submissions_bp.post("")
@rate_limited("api")
@optional_auth
def submit_card_route():
    """
    Request body:
    {
        "card": {"id": "tfc-1", "name": "Mickey Mouse", "set": "TFC", ...},
        "images": ["https://..."],
        "source": "mobile"
    }
    """
    data = request.get_json(silent=True) or {}
    auth = g.get("auth")
    try:
        submission = submission_service.submit_card(
            data.get("card"),
            submitted_by=auth.actor_id if auth else None,
            images=data.get("images"),
            source=data.get("source", "mobile" if auth is None else "manual"),
        )
    except SubmissionError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"submission": submission.to_dict()}), 201


@submissions_bp.get("")
@require_auth
@require_admin
def list_submissions_route():
    submissions = submission_service.list_submissions(status=request.args.get("status"))
    return jsonify({"submissions": [s.to_dict() for s in submissions]}), 200


@submissions_bp.post("/<int:submission_id>/approve")
@require_auth
@require_admin
def approve_submission_route(submission_id: int):
    """Approve a pending submission. Optional body {"overrides": {...}} edits card fields first."""
    data = request.get_json(silent=True) or {}
    try:
        card = submission_service.approve_submission(
            submission_id, g.auth.actor_id, overrides=data.get("overrides")
        )
    except SubmissionNotFound as e:
        return jsonify({"error": str(e)}), 404
    except SubmissionError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"card": card.to_dict()}), 200


@submissions_bp.post("/<int:submission_id>/reject")
@require_auth
@require_admin
def reject_submission_route(submission_id: int):
    data = request.get_json(silent=True) or {}
    try:
        submission = submission_service.reject_submission(
            submission_id, g.auth.actor_id, data.get("reason") or ""
        )
    except SubmissionNotFound as e:
        return jsonify({"error": str(e)}), 404
    except SubmissionError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"submission": submission.to_dict()}), 200
