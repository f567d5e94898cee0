from flask import Blueprint, g, request
from routes.common import respond, json_body, form_or_json, page_args
from services import merchant_service, purchase_service, ticket_service
from services.auth_service import token_required
from services.export_service import export_orders

merchants_bp = Blueprint('merchants', __name__, url_prefix='/api/merchants')


@merchants_bp.route("/dashboard")
@token_required('MERCHANT')
def dashboard():
    return respond(merchant_service.dashboard(g.current_user))


@merchants_bp.route("/profile")
@token_required('MERCHANT')
def profile():
    return respond({"success": True, "data": {"user": g.current_user.to_dict()}})


@merchants_bp.route("/update/profile", methods=["PUT"])
@token_required('MERCHANT')
def update_profile():
    return respond(merchant_service.update_own_profile(g.current_user, form_or_json(), request.files))


# --- 주문 ---

def _order_filters():
    return {
        "search": request.args.get("search", "").strip() or None,
        "status": request.args.get("status") or None,
        "sort_order": request.args.get("sortOrder", "desc"),
    }


@merchants_bp.route("/orders")
@token_required('MERCHANT')
def orders():
    page, limit = page_args()
    return respond(purchase_service.list_orders(g.current_user, page=page, limit=limit, **_order_filters()))


@merchants_bp.route("/orders/export")
@token_required('MERCHANT')
def orders_export():
    return export_orders(purchase_service.orders_query(g.current_user.id, **_order_filters()).all())


# --- 고객센터 문의 ---

@merchants_bp.route("/support-ticket", methods=["POST"])
@token_required('MERCHANT')
def create_ticket():
    return respond(ticket_service.create_ticket(g.current_user, json_body()))


@merchants_bp.route("/support-ticket", methods=["GET"])
@token_required('MERCHANT', 'ADMIN')
def list_tickets():
    page, limit = page_args()
    return respond(ticket_service.list_tickets(
        g.current_user,
        search=request.args.get("search", "").strip() or None,
        status=request.args.get("status") or None,
        order=request.args.get("order", "desc"),
        page=page,
        limit=limit,
    ))


@merchants_bp.route("/support-ticket/<int:ticket_id>", methods=["GET"])
@token_required('MERCHANT', 'ADMIN')
def get_ticket(ticket_id):
    return respond(ticket_service.get_ticket(g.current_user, ticket_id))


@merchants_bp.route("/support-ticket/<int:ticket_id>", methods=["PUT"])
@token_required('ADMIN')
def update_ticket(ticket_id):
    return respond(ticket_service.update_ticket(g.current_user, ticket_id, json_body()))
