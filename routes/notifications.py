from flask import Blueprint, g, request
from routes.common import respond, json_body, page_args, as_bool
from services import notification_service
from services.auth_service import token_required

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@notifications_bp.route("")
@token_required()
def list_notifications():
    page, limit = page_args(default_limit=20)
    return respond(notification_service.list_notifications(
        g.current_user, page=page, limit=limit, unread_only=as_bool(request.args.get("unreadOnly"))))


@notifications_bp.route("/unread-count")
@token_required()
def unread_count():
    return respond({"success": True, "data": {"count": notification_service.unread_count(g.current_user)}})


@notifications_bp.route("/<int:notification_id>/read", methods=["PATCH"])
@token_required()
def mark_read(notification_id):
    return respond(notification_service.mark_as_read(g.current_user, notification_id))


@notifications_bp.route("/read-all", methods=["PATCH"])
@token_required()
def mark_all_read():
    return respond(notification_service.mark_all_as_read(g.current_user))


@notifications_bp.route("/<int:notification_id>", methods=["DELETE"])
@token_required()
def delete(notification_id):
    return respond(notification_service.delete_notification(g.current_user, notification_id))


@notifications_bp.route("/preferences", methods=["GET"])
@token_required()
def preferences():
    return respond(notification_service.preferences_for(g.current_user))


@notifications_bp.route("/preferences", methods=["PATCH"])
@token_required()
def update_preferences():
    return respond(notification_service.update_preferences(g.current_user, json_body()))


@notifications_bp.route("/test", methods=["POST"])
@token_required()
def test_notification():
    return respond(notification_service.send_test_notification(g.current_user))
