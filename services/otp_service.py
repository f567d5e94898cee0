import re
import secrets
import string
from datetime import datetime, timedelta
from flask import current_app
from config import hash_secret, check_secret
from models import db, PurchasedGiftCards, RedemptionOtps
from services.notification_service import get_message_template, send_email, send_sms
from services.activity_log_service import log_activity
from services.formatting import format_currency, mask_phone
from services.purchase_service import refresh_status

OTP_ALPHABET = string.ascii_uppercase + string.digits


def generate_otp(length=6):
    return "".join(secrets.choice(OTP_ALPHABET) for _ in range(length))


def normalize_otp(value):
    """대문자 변환 후 A-Z0-9 이외 문자 제거 (붙여넣기 입력 대응)"""
    return re.sub(r"[^A-Z0-9]", "", str(value or "").upper())


def seconds_until_resend(last_sent_at, now=None):
    if not last_sent_at:
        return 0
    now = now or datetime.now()
    wait = current_app.config['OTP_RESEND_SECONDS'] - (now - last_sent_at).total_seconds()
    return max(int(wait + 0.999), 0)


def _load_purchase(user, purchase_id):
    purchase = db.session.get(PurchasedGiftCards, purchase_id)
    if not purchase or (user.role != 'ADMIN' and purchase.merchant_id != user.id):
        return None
    return purchase


def latest_otp(purchase_id):
    return RedemptionOtps.query.filter_by(purchase_id=purchase_id) \
        .order_by(RedemptionOtps.sent_at.desc(), RedemptionOtps.id.desc()).first()


def request_otp(user, purchase_id):
    """
    사용 인증번호 발송.
    - 직전 발송 후 OTP_RESEND_SECONDS 이내 재요청 불가
    - 잔액이 남아 있는 ACTIVE 상태만 발송
    """
    purchase = _load_purchase(user, purchase_id)
    if not purchase:
        return {"success": False, "message": "Purchase not found", "status": 404}

    if refresh_status(purchase):
        db.session.commit()
    if purchase.status != 'ACTIVE':
        return {"success": False, "message": f"Gift card is {purchase.status.lower()} and cannot be redeemed"}
    if purchase.current_balance <= 0:
        return {"success": False, "message": "Gift card has no remaining balance"}

    previous = latest_otp(purchase.id)
    wait = seconds_until_resend(previous.sent_at) if previous and not previous.consumed_at else 0
    if wait > 0:
        return {"success": False, "message": f"Please wait {wait} seconds before requesting a new OTP",
                "retryAfter": wait, "status": 429}

    # 이전 인증번호 무효화
    RedemptionOtps.query.filter_by(purchase_id=purchase.id, consumed_at=None) \
        .update({"consumed_at": datetime.now()})

    config = current_app.config
    otp = generate_otp(config['OTP_LENGTH'])
    now = datetime.now()
    record = RedemptionOtps(
        purchase_id=purchase.id,
        requested_by_id=user.id,
        code_hash=hash_secret(otp),
        sent_at=now,
        expires_at=now + timedelta(minutes=config['OTP_EXPIRY_MINUTES']),
    )
    db.session.add(record)
    log_activity("REDEMPTION_OTP_REQUESTED", "REDEMPTION", f"OTP requested for {purchase.qr_code}",
                 actor=user, resource_type="PURCHASE", resource_id=purchase.id, merchant_id=purchase.merchant_id)
    db.session.commit()

    profile = purchase.merchant.merchant_profile if purchase.merchant else None
    body = get_message_template(
        "REDEMPTION_OTP",
        otp=otp,
        business_name=profile.business_name if profile else None,
        balance=format_currency(purchase.current_balance),
        expiry_minutes=config['OTP_EXPIRY_MINUTES'],
    )
    send_email(purchase.customer_email, "Your gift card redemption code", body)
    phone = purchase.customer_phone
    if phone:
        send_sms(phone, body)

    current_app.logger.info(f"Redemption OTP sent for purchase {purchase.id}")
    return {
        "success": True,
        "message": "OTP sent successfully",
        "data": {
            "expiresAt": record.expires_at.isoformat(),
            "resendAvailableIn": config['OTP_RESEND_SECONDS'],
            "maskedPhone": mask_phone(phone),
        },
    }


def verify_otp(user, purchase_id, otp):
    """
    인증번호 확인. 틀릴 때마다 시도 횟수 증가, OTP_MAX_ATTEMPTS 도달 시 잠금
    """
    code = normalize_otp(otp)
    length = current_app.config['OTP_LENGTH']
    if len(code) != length:
        return {"success": False, "message": f"Please enter the complete {length}-character OTP"}

    purchase = _load_purchase(user, purchase_id)
    if not purchase:
        return {"success": False, "message": "Purchase not found", "status": 404}

    record = latest_otp(purchase.id)
    if not record or record.consumed_at:
        return {"success": False, "message": "No active OTP. Please request a new one."}
    if record.expires_at < datetime.now():
        return {"success": False, "message": "OTP has expired. Please request a new one."}

    max_attempts = current_app.config['OTP_MAX_ATTEMPTS']
    if record.attempts >= max_attempts:
        return {"success": False, "message": "Too many failed attempts. Please request a new OTP.", "status": 429}

    if not check_secret(code, record.code_hash):
        record.attempts += 1
        remaining = max_attempts - record.attempts
        log_activity("REDEMPTION_OTP_FAILED", "REDEMPTION", f"Invalid OTP for {purchase.qr_code}",
                     actor=user, resource_type="PURCHASE", resource_id=purchase.id,
                     merchant_id=purchase.merchant_id, severity="WARNING")
        db.session.commit()
        current_app.logger.warning(f"Invalid redemption OTP for purchase {purchase.id} ({remaining} left)")
        if remaining <= 0:
            return {"success": False, "message": "Too many failed attempts. Please request a new OTP.",
                    "status": 429}
        return {"success": False, "message": f"Invalid OTP. {remaining} attempt(s) remaining.",
                "remainingAttempts": remaining}

    if record.verified_at:
        return {"success": True, "message": "OTP already verified"}

    record.verified_at = datetime.now()
    log_activity("REDEMPTION_OTP_VERIFIED", "REDEMPTION", f"OTP verified for {purchase.qr_code}",
                 actor=user, resource_type="PURCHASE", resource_id=purchase.id, merchant_id=purchase.merchant_id)
    db.session.commit()
    return {"success": True, "message": "OTP verified successfully"}


def verified_otp_for(purchase_id):
    """사용 가능한(확인 완료 + 미사용 + 유효시간 내) 인증번호"""
    record = latest_otp(purchase_id)
    if not record or not record.verified_at or record.consumed_at:
        return None
    window = timedelta(minutes=current_app.config['OTP_VERIFIED_WINDOW_MINUTES'])
    if record.verified_at + window < datetime.now():
        return None
    return record
