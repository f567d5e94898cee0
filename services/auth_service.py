import secrets
from datetime import datetime, timedelta
from functools import wraps
from flask import current_app, g, jsonify, request
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from config import hash_secret, check_secret
from models import db, Users, MerchantProfiles, PasswordResetOtps
from services.validators import (
    is_valid_email, validate_new_password, password_errors, password_strength, password_strength_label,
)
from services.notification_service import get_message_template, send_email, notify_admins
from services.activity_log_service import log_activity

ACCESS_SALT = 'access-token'
REFRESH_SALT = 'refresh-token'
RESET_SALT = 'password-reset'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'])


def issue_tokens(user):
    s = _serializer()
    return {
        "accessToken": s.dumps({"uid": user.id, "role": user.role}, salt=ACCESS_SALT),
        "refreshToken": s.dumps({"uid": user.id}, salt=REFRESH_SALT),
    }


def load_token(token, salt, max_age):
    """토큰 검증 후 payload 반환. 실패 시 (None, 사유)"""
    try:
        return _serializer().loads(token, salt=salt, max_age=max_age), None
    except SignatureExpired:
        return None, "Token expired"
    except BadSignature:
        return None, "Invalid token"


def _bearer_token():
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[7:].strip()
    return None


def token_required(*roles):
    """
    Bearer 토큰 인증 데코레이터. roles 지정 시 역할 검사.
    인증된 사용자는 g.current_user 로 접근
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            token = _bearer_token()
            if not token:
                return jsonify({"success": False, "message": "Authentication required"}), 401

            payload, error = load_token(token, ACCESS_SALT, current_app.config['ACCESS_TOKEN_MAX_AGE'])
            if error:
                return jsonify({"success": False, "message": error}), 401

            user = db.session.get(Users, payload.get("uid"))
            if not user:
                return jsonify({"success": False, "message": "User not found"}), 401
            if not user.is_active:
                return jsonify({"success": False, "message": "Account is suspended"}), 403
            if roles and user.role not in roles:
                return jsonify({"success": False, "message": "You do not have permission to perform this action"}), 403

            g.current_user = user
            return view(*args, **kwargs)
        return wrapper
    return decorator


def optional_user():
    """공개 API 에서 토큰이 있으면 사용자 반환, 없거나 유효하지 않으면 None"""
    token = _bearer_token()
    if not token:
        return None
    payload, error = load_token(token, ACCESS_SALT, current_app.config['ACCESS_TOKEN_MAX_AGE'])
    if error:
        return None
    user = db.session.get(Users, payload.get("uid"))
    return user if user and user.is_active else None


def _auth_payload(user, message):
    return {
        "success": True,
        "message": message,
        "data": {"user": user.to_dict(), "tokens": issue_tokens(user)},
    }


def register_merchant(data):
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    name = (data.get("name") or "").strip()
    business_name = (data.get("businessName") or "").strip()

    if not all([email, password, name, business_name]):
        return {"success": False, "message": "Email, password, name and business name are required"}
    if not is_valid_email(email):
        return {"success": False, "message": "Invalid email address"}
    missing = password_errors(password)
    if missing:
        return {"success": False, "message": f"Password requirements not met: {', '.join(missing)}",
                "passwordStrength": password_strength_label(password_strength(password))}
    if Users.query.filter_by(email=email).first():
        return {"success": False, "message": "An account with this email already exists", "status": 409}

    user = Users(email=email, name=name, phone=data.get("phone"), role='MERCHANT',
                 password_hash=hash_secret(password))
    db.session.add(user)
    db.session.flush()

    profile = MerchantProfiles(
        user_id=user.id,
        business_name=business_name,
        business_type=data.get("businessType"),
        business_category=data.get("businessCategory"),
        city=data.get("city"),
        country=data.get("country") or 'India',
        profile_status='INCOMPLETE',
    )
    db.session.add(profile)
    notify_admins("MERCHANT_REGISTERED", "New merchant registered",
                  f"{business_name} ({email}) has registered.", "MERCHANT", user.id, actor=user)
    log_activity("MERCHANT_REGISTERED", "AUTH", f"Merchant {email} registered", actor=user,
                 resource_type="MERCHANT", resource_id=user.id, merchant_id=user.id)

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Merchant registration failed: {e}")
        return {"success": False, "message": "Registration failed. Please try again.", "status": 500}

    result = _auth_payload(user, "Registration successful")
    result["status"] = 201
    return result


def login(email, password):
    email = (email or "").strip().lower()
    user = Users.query.filter_by(email=email).first()

    if not user or not check_secret(password, user.password_hash):
        current_app.logger.warning(f"Login failed for {email}")
        log_activity("LOGIN_FAILED", "AUTH", f"Failed login attempt for {email}", severity="WARNING",
                     actor=user, merchant_id=user.id if user and user.role == 'MERCHANT' else None)
        db.session.commit()
        return {"success": False, "message": "Invalid email or password", "status": 401}

    if not user.is_active:
        return {"success": False, "message": "Your account has been suspended. Please contact support.",
                "status": 403}

    user.last_login_at = datetime.now()
    log_activity("LOGIN", "AUTH", f"{user.email} logged in", actor=user,
                 merchant_id=user.id if user.role == 'MERCHANT' else None)
    db.session.commit()
    return _auth_payload(user, "Login successful")


def refresh(refresh_token):
    if not refresh_token:
        return {"success": False, "message": "Refresh token is required", "status": 400}
    payload, error = load_token(refresh_token, REFRESH_SALT, current_app.config['REFRESH_TOKEN_MAX_AGE'])
    if error:
        return {"success": False, "message": error, "status": 401}
    user = db.session.get(Users, payload.get("uid"))
    if not user or not user.is_active:
        return {"success": False, "message": "Invalid token", "status": 401}
    return {"success": True, "message": "Token refreshed", "data": {"tokens": issue_tokens(user)}}


def logout(user):
    log_activity("LOGOUT", "AUTH", f"{user.email} logged out", actor=user,
                 merchant_id=user.id if user.role == 'MERCHANT' else None)
    db.session.commit()
    return {"success": True, "message": "Logged out successfully"}


def change_password(user, data):
    current = data.get("currentPassword") or ""
    if not check_secret(current, user.password_hash):
        return {"success": False, "message": "Current password is incorrect"}
    error = validate_new_password(data.get("newPassword"), data.get("confirmPassword"), current)
    if error:
        return {"success": False, "message": error}

    user.password_hash = hash_secret(data["newPassword"])
    user.is_first_time = False
    log_activity("PASSWORD_CHANGED", "AUTH", f"{user.email} changed password", actor=user)
    db.session.commit()
    return {"success": True, "message": "Password changed successfully"}


def request_password_reset(email):
    """
    비밀번호 재설정 OTP 발송 (6자리 숫자).
    가입 여부는 응답에서 노출하지 않음
    """
    generic = {"success": True, "message": "If the email is registered, an OTP has been sent"}
    email = (email or "").strip().lower()
    if not is_valid_email(email):
        return {"success": False, "message": "Invalid email address"}

    user = Users.query.filter_by(email=email).first()
    if not user:
        return generic

    expiry_minutes = current_app.config['OTP_EXPIRY_MINUTES']
    otp = f"{secrets.randbelow(10 ** 6):06d}"
    PasswordResetOtps.query.filter_by(user_id=user.id, used_at=None).update({"used_at": datetime.now()})
    db.session.add(PasswordResetOtps(
        user_id=user.id,
        code_hash=hash_secret(otp),
        expires_at=datetime.now() + timedelta(minutes=expiry_minutes),
    ))
    db.session.commit()

    body = get_message_template("PASSWORD_RESET_OTP", otp=otp, expiry_minutes=expiry_minutes)
    send_email(user.email, "Password reset code", body)
    return generic


def verify_password_reset(email, otp):
    email = (email or "").strip().lower()
    otp = (otp or "").strip()
    if len(otp) != 6:
        return {"success": False, "message": "OTP must be 6 characters"}

    user = Users.query.filter_by(email=email).first()
    record = None
    if user:
        record = PasswordResetOtps.query.filter_by(user_id=user.id, used_at=None) \
            .order_by(PasswordResetOtps.sent_at.desc()).first()
    if not record or record.expires_at < datetime.now():
        return {"success": False, "message": "OTP expired or not found. Please request a new one."}
    if record.attempts >= current_app.config['OTP_MAX_ATTEMPTS']:
        return {"success": False, "message": "Too many failed attempts. Please request a new OTP.", "status": 429}

    if not check_secret(otp, record.code_hash):
        record.attempts += 1
        db.session.commit()
        return {"success": False, "message": "Invalid OTP"}

    reset_token = _serializer().dumps({"uid": user.id, "rid": record.id}, salt=RESET_SALT)
    return {"success": True, "message": "OTP verified", "data": {"resetToken": reset_token}}


def reset_password(reset_token, new_password, confirm_password):
    payload, error = load_token(reset_token or "", RESET_SALT, current_app.config['RESET_TOKEN_MAX_AGE'])
    if error:
        return {"success": False, "message": "Reset link is invalid or has expired"}

    record = db.session.get(PasswordResetOtps, payload.get("rid"))
    if not record or record.used_at or record.user_id != payload.get("uid"):
        return {"success": False, "message": "Reset link is invalid or has expired"}

    error = validate_new_password(new_password, confirm_password)
    if error:
        return {"success": False, "message": error}

    user = db.session.get(Users, record.user_id)
    user.password_hash = hash_secret(new_password)
    record.used_at = datetime.now()
    log_activity("PASSWORD_RESET", "AUTH", f"{user.email} reset password", actor=user)
    db.session.commit()
    return {"success": True, "message": "Password reset successfully"}


def admin_create_merchant(admin, data):
    """관리자가 직접 생성한 가맹점은 심사 완료(VERIFIED) 상태로 시작"""
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    name = (data.get("name") or "").strip()
    business_name = (data.get("businessName") or "").strip()

    if not all([email, password, name, business_name]):
        return {"success": False, "message": "Email, password, name and business name are required"}
    if not is_valid_email(email):
        return {"success": False, "message": "Invalid email address"}
    missing = password_errors(password)
    if missing:
        return {"success": False, "message": f"Password requirements not met: {', '.join(missing)}",
                "passwordStrength": password_strength_label(password_strength(password))}
    if Users.query.filter_by(email=email).first():
        return {"success": False, "message": "An account with this email already exists", "status": 409}

    user = Users(email=email, name=name, phone=data.get("phone"), role='MERCHANT',
                 password_hash=hash_secret(password))
    db.session.add(user)
    db.session.flush()
    db.session.add(MerchantProfiles(
        user_id=user.id,
        business_name=business_name,
        business_type=data.get("businessType"),
        business_category=data.get("businessCategory"),
        address=data.get("address"),
        city=data.get("city"),
        country=data.get("country") or 'India',
        business_email=data.get("businessEmail") or email,
        business_phone=data.get("businessPhone"),
        profile_status='VERIFIED',
        verified_at=datetime.now(),
    ))
    log_activity("MERCHANT_CREATED", "MERCHANT", f"Admin created merchant {email}", actor=admin,
                 resource_type="MERCHANT", resource_id=user.id, merchant_id=user.id)
    db.session.commit()
    return {"success": True, "message": "Merchant created successfully",
            "data": {"merchant": user.to_dict()}, "status": 201}


def admin_set_password(admin, data):
    merchant_id = data.get("merchantId")
    user = db.session.get(Users, merchant_id) if merchant_id else None
    if not user or user.role != 'MERCHANT':
        return {"success": False, "message": "Merchant not found", "status": 404}

    error = validate_new_password(data.get("newPassword"), data.get("confirmPassword"))
    if error:
        return {"success": False, "message": error}

    user.password_hash = hash_secret(data["newPassword"])
    user.is_first_time = True
    log_activity("PASSWORD_RESET_BY_ADMIN", "AUTH", f"Admin reset password for {user.email}", actor=admin,
                 resource_type="MERCHANT", resource_id=user.id, merchant_id=user.id, severity="WARNING")
    db.session.commit()
    return {"success": True, "message": "Password updated successfully"}
