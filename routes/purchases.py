import io
from flask import Blueprint, g, request, send_file, current_app
from extensions import limiter
from routes.common import respond, json_body, page_args, as_int
from services import purchase_service, otp_service, redemption_service
from services.auth_service import token_required
from services.export_service import export_redemptions, export_redemption_history
from services.qr_service import build_qr_png

purchases_bp = Blueprint('purchases', __name__, url_prefix='/api/purchases')


@purchases_bp.route("/gift-cards/<int:gift_card_id>", methods=["POST"])
@limiter.limit("20 per hour")
def buy(gift_card_id):
    return respond(purchase_service.purchase_gift_card(gift_card_id, json_body()))


@purchases_bp.route("/qr/<qr_code>")
def lookup(qr_code):
    return respond(purchase_service.lookup_balance(qr_code))


@purchases_bp.route("/qr/<qr_code>/image")
def qr_image(qr_code):
    if not purchase_service.find_by_qr(qr_code):
        return respond({"success": False, "message": "Gift card not found", "status": 404})
    png = build_qr_png(f"{current_app.config['PUBLIC_BASE_URL']}/api/purchases/qr/{qr_code}")
    return send_file(io.BytesIO(png), mimetype="image/png", download_name=f"{qr_code}.png")


@purchases_bp.route("/customer/<email>")
def customer(email):
    return respond(purchase_service.customer_purchases(email))


# --- 사용 인증번호 / 사용 처리 ---

@purchases_bp.route("/otp/request-otp", methods=["POST"])
@limiter.limit("5 per minute")
@token_required('MERCHANT', 'ADMIN')
def request_otp():
    purchase_id = as_int(json_body().get("purchaseId"))
    if not purchase_id:
        return respond({"success": False, "message": "purchaseId is required"})
    return respond(otp_service.request_otp(g.current_user, purchase_id))


@purchases_bp.route("/otp/verify-otp", methods=["POST"])
@limiter.limit("10 per minute")
@token_required('MERCHANT', 'ADMIN')
def verify_otp():
    data = json_body()
    purchase_id = as_int(data.get("purchaseId"))
    if not purchase_id:
        return respond({"success": False, "message": "purchaseId is required"})
    return respond(otp_service.verify_otp(g.current_user, purchase_id, data.get("otp")))


@purchases_bp.route("/redeem", methods=["POST"])
@token_required('MERCHANT', 'ADMIN')
def redeem():
    return respond(redemption_service.redeem(g.current_user, json_body()))


# --- 사용 내역 ---

def _redemption_filters():
    return {
        "search": request.args.get("search", "").strip() or None,
        "start_date": request.args.get("startDate"),
        "end_date": request.args.get("endDate"),
    }


@purchases_bp.route("/redemptions")
@purchases_bp.route("/redemptions/history")
@token_required('MERCHANT', 'ADMIN')
def redemptions():
    page, limit = page_args()
    return respond(redemption_service.list_redemptions(g.current_user, page=page, limit=limit,
                                                       **_redemption_filters()))


@purchases_bp.route("/redemptions/export")
@token_required('MERCHANT', 'ADMIN')
def redemptions_export():
    query = redemption_service.redemptions_query(g.current_user, **_redemption_filters())
    return export_redemptions(query.all())


@purchases_bp.route("/redemptions/history/qr/<qr_code>")
@token_required('MERCHANT', 'ADMIN')
def history_by_qr(qr_code):
    return respond(redemption_service.history_by_qr(g.current_user, qr_code))


@purchases_bp.route("/redemptions/history/purchase/<int:purchase_id>")
@token_required('MERCHANT', 'ADMIN')
def history_by_purchase(purchase_id):
    return respond(redemption_service.history_by_purchase(g.current_user, purchase_id))


@purchases_bp.route("/redemptions/history/qr/<qr_code>/export")
@token_required('MERCHANT', 'ADMIN')
def history_export(qr_code):
    purchase, items = redemption_service.history_redemptions_for_qr(g.current_user, qr_code)
    if not purchase:
        return respond({"success": False, "message": "Gift card not found", "status": 404})
    return export_redemption_history(purchase.qr_code, items)
