from flask import Blueprint, g, session, jsonify
from extensions import limiter
from routes.common import respond, json_body
from services import otp_service, redemption_service
from services.auth_service import token_required
from services.redemption_flow import RedemptionFlow, STEP_VERIFIED

staff_bp = Blueprint('staff', __name__, url_prefix='/staff')


def _no_flow():
    return respond({"success": False, "message": "Scan a gift card first", "status": 409})


@staff_bp.route("/scan", methods=["POST"])
@token_required('MERCHANT', 'ADMIN')
def scan():
    qr_code = (json_body().get("qrCode") or "").strip()
    if not qr_code:
        return respond({"success": False, "message": "QR code is required"})

    result = redemption_service.history_by_qr(g.current_user, qr_code)
    if not result["success"]:
        RedemptionFlow.clear(session)
        return respond(result)

    purchase = result["data"]["purchase"]
    flow = RedemptionFlow.start(purchase)
    flow.save(session)
    return jsonify({"success": True, "data": {"purchase": purchase, "flow": flow.to_dict()}})


def _send_otp(resend=False):
    flow = RedemptionFlow.from_session(session)
    if not flow:
        return _no_flow()
    if resend and not flow.otp_sent:
        return respond({"success": False, "message": "No OTP has been sent yet"})

    # 재발송 대기 시간
    wait = flow.seconds_until_resend()
    if wait > 0:
        return respond({"success": False, "message": f"Please wait {wait} seconds before resending OTP",
                        "retryAfter": wait, "status": 429})

    result = otp_service.request_otp(g.current_user, flow.purchase_id)
    if not result["success"]:
        return respond(result)

    flow.mark_otp_sent(result["data"]["maskedPhone"])
    flow.save(session)
    result["data"]["flow"] = flow.to_dict()
    return respond(result)


@staff_bp.route("/otp", methods=["POST"])
@limiter.limit("5 per minute")
@token_required('MERCHANT', 'ADMIN')
def send_otp():
    return _send_otp()


@staff_bp.route("/otp/resend", methods=["POST"])
@limiter.limit("5 per minute")
@token_required('MERCHANT', 'ADMIN')
def resend_otp():
    return _send_otp(resend=True)


@staff_bp.route("/confirm", methods=["POST"])
@token_required('MERCHANT', 'ADMIN')
def confirm():
    flow = RedemptionFlow.from_session(session)
    if not flow:
        return _no_flow()

    data = json_body()
    location_name = data.get("locationName", flow.location_name)
    location_address = data.get("locationAddress", flow.location_address)
    error = flow.validate_submission(data.get("otp"), data.get("amount"), location_name, location_address)
    if error:
        return respond({"success": False, "message": error})

    result = redemption_service.redeem(g.current_user, {
        "qrCode": flow.qr_code,
        "amount": data.get("amount"),
        "locationName": location_name,
        "locationAddress": location_address,
        "notes": data.get("notes"),
        "otp": None if flow.step == STEP_VERIFIED else data.get("otp"),
    })
    if result["success"]:
        flow.complete(result["data"])
    elif otp_service.verified_otp_for(flow.purchase_id):
        # 인증은 끝났으나 차감 실패 -> 재시도 시 인증번호 생략
        flow.mark_verified()
    flow.location_name = location_name
    flow.location_address = location_address
    flow.save(session)

    result["flow"] = flow.to_dict()
    return respond(result)


@staff_bp.route("/state")
@token_required('MERCHANT', 'ADMIN')
def state():
    flow = RedemptionFlow.from_session(session)
    if not flow:
        return jsonify({"success": True, "data": None})
    return jsonify({"success": True, "data": flow.to_dict()})


@staff_bp.route("/reset", methods=["POST"])
@token_required('MERCHANT', 'ADMIN')
def reset():
    RedemptionFlow.clear(session)
    return jsonify({"success": True, "message": "Redemption cancelled"})
