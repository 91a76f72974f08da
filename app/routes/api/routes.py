from functools import wraps

from flask import jsonify, request

from app import db
from app.models import User
from app.routes.api import bp

MAX_LEADERBOARD_LIMIT = 100


def add_security_headers(f):
    """Add security headers to API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if hasattr(response, "headers"):
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["Cache-Control"] = (
                "no-store, no-cache, must-revalidate, max-age=0"
            )
        return response

    return decorated_function


@bp.route("/leaderboard")
@add_security_headers
def leaderboard():
    """Get the global leaderboard"""
    limit = request.args.get("limit", 20, type=int)
    offset = request.args.get("offset", 0, type=int)

    if limit < 1 or offset < 0:
        return (
            jsonify(
                {"success": False, "error": "limit must be positive and offset >= 0"}
            ),
            400,
        )

    limit = min(limit, MAX_LEADERBOARD_LIMIT)

    return jsonify(
        {
            "success": True,
            "data": {
                "limit": limit,
                "offset": offset,
                "leaderboard": User.get_leaderboard(limit=limit, offset=offset),
            },
        }
    )


@bp.route("/leaderboard/user/<int:user_id>")
@add_security_headers
def user_rank(user_id):
    """Get a single user's rank and points"""
    rank = User.get_rank(user_id)
    if rank is None:
        return jsonify({"success": False, "error": "User not found"}), 404

    user = db.session.get(User, user_id)
    data = user.to_dict()
    data["rank"] = rank

    return jsonify({"success": True, "data": data})
