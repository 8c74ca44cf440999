"""Points progress, achievements, reward redemption and certificate delivery."""
import os
from datetime import datetime

from flask import Blueprint, abort, current_app, jsonify, request, send_file, url_for
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import PointTransaction, Report, RewardRedemption
from utils.achievements import ACHIEVEMENT_CATEGORIES, ACHIEVEMENTS, counter_value, get_achievements_by_category
from utils.certificate_pdf import generate_certificate
from utils.decorators import log_action
from utils.encryption import EncryptionError, EncryptionService
from utils.image_utils import remove_stored_file
from utils.points import account_counters, debit_points, earned_progress, evaluate_achievements
from utils.rewards import REWARDS, REWARDS_BY_ID, get_available_rewards, redeem_reward
from utils.scoring import get_progress_to_next_level

rewards_bp = Blueprint("rewards", __name__, url_prefix="/rewards")


def _reward_payload(reward, points: int, now: datetime) -> dict:
    payload = reward.to_dict()
    payload["affordable"] = reward.points_cost <= points
    payload["expired"] = reward.is_expired(now)
    return payload


def _certificate_path(redemption_id: str) -> str:
    return os.path.join(current_app.config["CERTIFICATE_DIR"], f"certificate_{redemption_id}.pdf")


def _issue_certificate(redemption: RewardRedemption, reward, now: datetime, crypto: EncryptionService) -> str:
    user = current_user
    verified = Report.query.filter(Report.user_id == user.id, Report.status.in_(("verified", "resolved"))).count()
    issued_at = now.strftime("%Y-%m-%d %H:%M:%S")
    output_path = _certificate_path(redemption.id)
    generate_certificate(
        {
            "title": reward.title,
            "holder_name": user.full_name,
            "certificate_id": redemption.id,
            "issued_at": issued_at,
            "rank": user.rank,
            "level": user.level,
            "verified_reports": verified,
            "points_spent": reward.points_cost,
            "verification_hash": crypto.hash_data(f"{user.id}|{redemption.id}|{issued_at}"),
        },
        output_path,
    )
    return output_path


@rewards_bp.route("/summary", methods=["GET"])
@login_required
def summary():
    points = current_user.points or 0
    return jsonify(
        {
            "points": points,
            "level": current_user.level,
            "rank": current_user.rank,
            "progress": get_progress_to_next_level(points),
            "achievements_earned": len(earned_progress(current_user)),
            "achievements_total": len(ACHIEVEMENTS),
            "redemptions": current_user.redemptions.count(),
        }
    )


@rewards_bp.route("/achievements", methods=["GET"])
@login_required
def achievements():
    category = request.args.get("category")
    if category and category not in ACHIEVEMENT_CATEGORIES:
        return jsonify({"success": False, "message": f"Unknown category: {category}"}), 400
    catalog = get_achievements_by_category(category) if category else list(ACHIEVEMENTS)
    progress = earned_progress(current_user)
    counters = account_counters(current_user)
    return jsonify(
        {
            "achievements": [
                a.to_dict(earned_at=progress.get(a.id), current=counter_value(counters, a.requirement_type))
                for a in catalog
            ],
            "counters": counters,
        }
    )


@rewards_bp.route("/achievements/check", methods=["POST"])
@login_required
def check_achievements():
    try:
        unlocked = evaluate_achievements(current_user)
        db.session.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Database error while evaluating achievements")
        db.session.rollback()
        return jsonify({"success": False, "message": "Unable to evaluate achievements."}), 500
    progress = earned_progress(current_user)
    return jsonify(
        {
            "success": True,
            "new_achievements": [a.to_dict(earned_at=progress.get(a.id)) for a in unlocked],
            "points": current_user.points,
        }
    )


@rewards_bp.route("", methods=["GET"])
@login_required
def catalog():
    now = datetime.utcnow()
    points = current_user.points or 0
    return jsonify({"points": points, "rewards": [_reward_payload(r, points, now) for r in REWARDS]})


@rewards_bp.route("/available", methods=["GET"])
@login_required
def available():
    now = datetime.utcnow()
    points = current_user.points or 0
    return jsonify({"points": points, "rewards": [_reward_payload(r, points, now) for r in get_available_rewards(points)]})


@rewards_bp.route("/<string:reward_id>/redeem", methods=["POST"])
@login_required
def redeem(reward_id):
    now = datetime.utcnow()
    outcome = redeem_reward(reward_id, current_user.points or 0, now=now)
    if not outcome["success"]:
        status = 404 if reward_id not in REWARDS_BY_ID else 400
        current_app.logger.info(
            "Redemption refused",
            extra={"user_id": current_user.id, "reward_id": reward_id, "reason": outcome["message"]},
        )
        return jsonify(outcome), status

    reward = outcome["reward"]
    crypto = EncryptionService.from_config(current_app.config)
    share_url = None
    certificate_path = None
    try:
        debit_points(current_user, reward.points_cost, f"redeem:{reward.id}")
        redemption = RewardRedemption(
            user_id=current_user.id,
            reward_id=reward.id,
            points_spent=reward.points_cost,
            balance_after=current_user.points,
            redeemed_at=now,
        )
        db.session.add(redemption)
        db.session.flush()
        if reward.type == "certificate":
            certificate_path = _certificate_path(redemption.id)
            redemption.certificate_path = _issue_certificate(redemption, reward, now, crypto)
            token = crypto.create_secure_token(
                redemption.id, expiration_hours=int(current_app.config.get("SECURE_TOKEN_HOURS", 24))
            )
            share_url = url_for("rewards.shared_certificate", token=token, _external=True)
        log_action("REWARD_REDEEMED", current_user, context=f"reward:{reward.id}")
        db.session.commit()
    except ValueError:
        # Another request spent the points after the balance check.
        db.session.rollback()
        return jsonify({"success": False, "message": "Insufficient points"}), 400
    except SQLAlchemyError:
        current_app.logger.exception("Database error while redeeming reward")
        db.session.rollback()
        remove_stored_file(certificate_path)
        return jsonify({"success": False, "message": "Unable to redeem reward right now."}), 500
    except (OSError, EncryptionError):
        current_app.logger.exception("Certificate generation failed")
        db.session.rollback()
        remove_stored_file(certificate_path)
        return jsonify({"success": False, "message": "Unable to issue certificate right now."}), 500

    current_app.logger.info(
        "Reward redeemed",
        extra={"user_id": current_user.id, "reward_id": reward.id, "balance": current_user.points},
    )
    return jsonify(
        {
            "success": True,
            "message": outcome["message"],
            "new_points": current_user.points,
            "redemption": redemption.to_dict(),
            "reward": reward.to_dict(),
            "certificate_share_url": share_url,
        }
    )


@rewards_bp.route("/redemptions", methods=["GET"])
@login_required
def redemptions():
    rows = current_user.redemptions.order_by(RewardRedemption.redeemed_at.desc()).all()
    items = []
    for row in rows:
        item = row.to_dict()
        reward = REWARDS_BY_ID.get(row.reward_id)
        item["reward"] = reward.to_dict() if reward else None
        items.append(item)
    return jsonify({"redemptions": items})


def _send_certificate(redemption: RewardRedemption):
    if not redemption.certificate_path or not os.path.isfile(redemption.certificate_path):
        abort(404)
    return send_file(
        redemption.certificate_path,
        mimetype="application/pdf",
        as_attachment=True,
        download_name=f"urbanwatch_certificate_{redemption.id}.pdf",
    )


@rewards_bp.route("/redemptions/<string:redemption_id>/certificate", methods=["GET"])
@login_required
def download_certificate(redemption_id):
    redemption = db.session.get(RewardRedemption, str(redemption_id))
    if not redemption or redemption.user_id != current_user.id:
        abort(404)
    return _send_certificate(redemption)


@rewards_bp.route("/certificates/<string:token>", methods=["GET"])
def shared_certificate(token):
    crypto = EncryptionService.from_config(current_app.config)
    result = crypto.validate_secure_token(token)
    if result.get("expired"):
        return jsonify({"success": False, "message": "This certificate link has expired."}), 410
    if not result.get("valid"):
        abort(404)
    redemption = db.session.get(RewardRedemption, str(result.get("subject")))
    if not redemption:
        abort(404)
    return _send_certificate(redemption)


@rewards_bp.route("/ledger", methods=["GET"])
@login_required
def ledger():
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (TypeError, ValueError):
        page = 1
    pagination = (
        PointTransaction.query.filter_by(user_id=current_user.id)
        .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .paginate(page=page, per_page=50, error_out=False)
    )
    return jsonify(
        {
            "transactions": [t.to_dict() for t in pagination.items],
            "page": pagination.page,
            "pages": pagination.pages,
            "total": pagination.total,
        }
    )
