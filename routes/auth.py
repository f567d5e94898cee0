from flask import Blueprint, g, request
from extensions import limiter
from routes.common import respond, json_body, form_or_json, as_bool
from services import auth_service, merchant_service
from services.auth_service import token_required

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route("/merchant/register", methods=["POST"])
@limiter.limit("10 per hour")
def register():
    return respond(auth_service.register_merchant(json_body()))


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")  # [보안] 비밀번호 대입 공격 방지
def login():
    data = json_body()
    return respond(auth_service.login(data.get("email"), data.get("password")))


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    return respond(auth_service.refresh(json_body().get("refreshToken")))


@auth_bp.route("/logout", methods=["POST"])
@token_required()
def logout():
    return respond(auth_service.logout(g.current_user))


@auth_bp.route("/me")
@token_required()
def me():
    return respond({"success": True, "data": {"user": g.current_user.to_dict()}})


@auth_bp.route("/change-password", methods=["POST"])
@token_required()
def change_password():
    return respond(auth_service.change_password(g.current_user, json_body()))


# --- 비밀번호 재설정 ---

@auth_bp.route("/get-otp", methods=["POST"])
@limiter.limit("3 per minute")
def get_otp():
    return respond(auth_service.request_password_reset(json_body().get("email")))


@auth_bp.route("/verify-otp", methods=["POST"])
@limiter.limit("5 per minute")
def verify_otp():
    data = json_body()
    return respond(auth_service.verify_password_reset(data.get("email"), data.get("otp")))


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    data = json_body()
    return respond(auth_service.reset_password(data.get("resetToken"), data.get("newPassword"),
                                               data.get("confirmPassword")))


# --- 가맹점 프로필 / 심사 ---

@auth_bp.route("/merchant/complete-profile", methods=["POST"])
@token_required('MERCHANT')
def complete_profile():
    return respond(merchant_service.complete_profile(g.current_user, form_or_json(), request.files))


@auth_bp.route("/merchant/verification-status")
@token_required('MERCHANT')
def verification_status():
    return respond(merchant_service.verification_status(g.current_user))


@auth_bp.route("/merchant/rejection-details")
@token_required('MERCHANT')
def rejection_details():
    return respond(merchant_service.rejection_details(g.current_user))


@auth_bp.route("/merchant/resubmit-documents", methods=["POST"])
@token_required('MERCHANT')
def resubmit_documents():
    return respond(merchant_service.resubmit_documents(g.current_user, form_or_json(), request.files))


@auth_bp.route("/admin/merchants/pending")
@token_required('ADMIN')
def pending_merchants():
    return respond(merchant_service.pending_merchants())


@auth_bp.route("/admin/merchants/<int:merchant_id>/verify", methods=["POST"])
@token_required('ADMIN')
def verify_merchant(merchant_id):
    data = json_body()
    return respond(merchant_service.verify_merchant(g.current_user, merchant_id, as_bool(data.get("approved")),
                                                    data.get("notes")))


@auth_bp.route("/admin/create-merchant", methods=["POST"])
@token_required('ADMIN')
def create_merchant():
    return respond(auth_service.admin_create_merchant(g.current_user, json_body()))


@auth_bp.route("/admin-password", methods=["POST"])
@token_required('ADMIN')
def admin_password():
    return respond(auth_service.admin_set_password(g.current_user, json_body()))
