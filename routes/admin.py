from flask import Blueprint, g, request
from routes.common import respond, json_body, page_args, as_bool
from services import merchant_service, activity_log_service
from services.auth_service import token_required

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@admin_bp.route("/merchants")
@token_required('ADMIN')
def merchants():
    page, limit = page_args()
    return respond(merchant_service.list_merchants(
        search=request.args.get("search", "").strip() or None,
        status=request.args.get("status") or None,
        page=page,
        limit=limit,
    ))


@admin_bp.route("/merchants/<int:merchant_id>", methods=["GET"])
@token_required('ADMIN')
def merchant_detail(merchant_id):
    return respond(merchant_service.get_merchant(merchant_id))


@admin_bp.route("/merchants/<int:merchant_id>", methods=["PUT"])
@token_required('ADMIN')
def update_merchant(merchant_id):
    return respond(merchant_service.admin_update_merchant(g.current_user, merchant_id, json_body()))


@admin_bp.route("/merchants/<int:merchant_id>/verify", methods=["POST"])
@token_required('ADMIN')
def verify_merchant(merchant_id):
    data = json_body()
    return respond(merchant_service.verify_merchant(g.current_user, merchant_id, as_bool(data.get("approved")),
                                                    data.get("notes")))


@admin_bp.route("/merchants/<int:merchant_id>/suspend", methods=["POST"])
@token_required('ADMIN')
def suspend_merchant(merchant_id):
    return respond(merchant_service.toggle_suspend(g.current_user, merchant_id))


@admin_bp.route("/analytics/dashboard")
@token_required('ADMIN')
def analytics_dashboard():
    return respond(merchant_service.platform_dashboard())


# --- 활동 로그 ---

@admin_bp.route("/activity-logs")
@token_required('ADMIN')
def activity_logs():
    page, limit = page_args(default_limit=20)
    filters = {key: request.args.get(key) for key in
               ("category", "severity", "resourceType", "resourceId", "startDate", "endDate", "search")}
    filters["merchantId"] = request.args.get("merchantId", type=int)
    filters["actorId"] = request.args.get("actorId", type=int)
    return respond(activity_log_service.list_logs(filters, page=page, limit=limit))


@admin_bp.route("/activity-logs/stats")
@token_required('ADMIN')
def activity_stats():
    return respond(activity_log_service.get_stats(request.args.get("merchantId", type=int)))


@admin_bp.route("/activity-logs/timeline/<resource_type>/<resource_id>")
@token_required('ADMIN')
def activity_timeline(resource_type, resource_id):
    return respond(activity_log_service.get_timeline(resource_type, resource_id))
