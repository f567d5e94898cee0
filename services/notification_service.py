from datetime import datetime
from flask import current_app
from models import db, Users, Notifications, NotificationPreferences

NOTIFICATION_TYPES = [
    "MERCHANT_REGISTERED",
    "PROFILE_SUBMITTED_FOR_VERIFICATION",
    "PURCHASE_MADE",
    "REDEMPTION_MADE",
    "PROFILE_VERIFIED",
    "PROFILE_REJECTED",
    "GIFT_CARD_PURCHASED",
    "GIFT_CARD_REDEEMED",
    "SUPPORT_TICKET",
    "CONTACT_MESSAGE",
]

# 알림 타입 -> 수신 설정 컬럼 (SUPPORT_TICKET, CONTACT_MESSAGE 는 항상 발송)
PREFERENCE_COLUMNS = {
    "MERCHANT_REGISTERED": "merchant_registered",
    "PROFILE_SUBMITTED_FOR_VERIFICATION": "profile_submitted_for_verification",
    "PURCHASE_MADE": "purchase_made",
    "REDEMPTION_MADE": "redemption_made",
    "PROFILE_VERIFIED": "profile_verified",
    "PROFILE_REJECTED": "profile_rejected",
    "GIFT_CARD_PURCHASED": "gift_card_purchased",
    "GIFT_CARD_REDEEMED": "gift_card_redeemed",
}


def get_message_template(template_type, **kwargs):
    """
    고객 발송용 메시지 본문 생성.
    - REDEMPTION_OTP: 기프트카드 사용 인증번호
    - PASSWORD_RESET_OTP: 비밀번호 재설정 인증번호
    """
    if template_type == "REDEMPTION_OTP":
        otp = kwargs.get("otp")
        business_name = kwargs.get("business_name") or "the merchant"
        amount = kwargs.get("balance")
        expiry_minutes = kwargs.get("expiry_minutes")

        msg = f"""Your gift card redemption code is {otp}.

{business_name} has requested to redeem your gift card (available balance: {amount}).
The code is valid for {expiry_minutes} minutes. Share it only with the staff serving you.

If you did not request this, please ignore this message."""
        return msg

    elif template_type == "PASSWORD_RESET_OTP":
        otp = kwargs.get("otp")
        expiry_minutes = kwargs.get("expiry_minutes")

        msg = f"""Your password reset code is {otp}.

The code is valid for {expiry_minutes} minutes.
If you did not request a password reset, you can ignore this email."""
        return msg

    return ""


def send_email(to, subject, body):
    """
    이메일 발송 (Placeholder)
    실제 메일 게이트웨이 연동 전까지 로그로 대체
    """
    try:
        current_app.logger.info(f"[EMAIL] To: {to} | Subject: {subject}")
        current_app.logger.debug(f"Body: {body}")
        return True
    except Exception as e:
        current_app.logger.error(f"Email failed: {e}")
        return False


def send_sms(phone, message):
    """
    문자 발송 (Placeholder)
    """
    try:
        current_app.logger.info(f"[SMS] To: {phone} | Length: {len(message)}")
        current_app.logger.debug(f"Msg: {message}")
        return True
    except Exception as e:
        current_app.logger.error(f"SMS failed: {e}")
        return False


def get_preferences(user_id):
    prefs = NotificationPreferences.query.filter_by(user_id=user_id).first()
    if not prefs:
        prefs = NotificationPreferences(user_id=user_id)
        db.session.add(prefs)
        db.session.flush()
    return prefs


def is_enabled(user_id, notification_type):
    column = PREFERENCE_COLUMNS.get(notification_type)
    if not column:
        return True
    prefs = NotificationPreferences.query.filter_by(user_id=user_id).first()
    if not prefs:
        return True
    return bool(getattr(prefs, column))


def create_notification(recipient, notification_type, title, message,
                        resource_type=None, resource_id=None, actor=None):
    """
    알림 생성 (커밋은 호출자 트랜잭션에 맡김).
    수신 설정에서 꺼진 타입이면 None 반환
    """
    if not is_enabled(recipient.id, notification_type):
        return None

    notification = Notifications(
        recipient_id=recipient.id,
        recipient_type=recipient.role,
        type=notification_type,
        title=title,
        message=message,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        actor_id=actor.id if actor else None,
        actor_name=actor.name if actor else None,
    )
    db.session.add(notification)
    return notification


def notify_admins(notification_type, title, message, resource_type=None, resource_id=None, actor=None):
    admins = Users.query.filter_by(role='ADMIN', is_active=True).all()
    for admin in admins:
        create_notification(admin, notification_type, title, message, resource_type, resource_id, actor)
    return len(admins)


def list_notifications(user, page=1, limit=20, unread_only=False):
    query = Notifications.query.filter_by(recipient_id=user.id)
    if unread_only:
        query = query.filter_by(is_read=False)
    pagination = query.order_by(Notifications.created_at.desc(), Notifications.id.desc()) \
        .paginate(page=page, per_page=limit, error_out=False)
    return {
        "success": True,
        "data": [n.to_dict() for n in pagination.items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": pagination.total,
            "totalPages": pagination.pages,
            "hasMore": pagination.has_next,
        },
    }


def unread_count(user):
    return Notifications.query.filter_by(recipient_id=user.id, is_read=False).count()


def mark_as_read(user, notification_id):
    notification = Notifications.query.filter_by(id=notification_id, recipient_id=user.id).first()
    if not notification:
        return {"success": False, "message": "Notification not found", "status": 404}
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now()
        db.session.commit()
    return {"success": True, "message": "Notification marked as read", "data": notification.to_dict()}


def mark_all_as_read(user):
    count = Notifications.query.filter_by(recipient_id=user.id, is_read=False) \
        .update({"is_read": True, "read_at": datetime.now()})
    db.session.commit()
    return {"success": True, "message": f"{count} notifications marked as read", "data": {"count": count}}


def delete_notification(user, notification_id):
    notification = Notifications.query.filter_by(id=notification_id, recipient_id=user.id).first()
    if not notification:
        return {"success": False, "message": "Notification not found", "status": 404}
    db.session.delete(notification)
    db.session.commit()
    return {"success": True, "message": "Notification deleted"}


def update_preferences(user, payload):
    prefs = get_preferences(user.id)
    for key, column in NotificationPreferences.FIELDS.items():
        if key in payload:
            setattr(prefs, column, bool(payload[key]))
    db.session.commit()
    return {"success": True, "message": "Preferences updated", "data": prefs.to_dict()}


def send_test_notification(user):
    notification = Notifications(
        recipient_id=user.id,
        recipient_type=user.role,
        type="SUPPORT_TICKET",
        title="Test notification",
        message="Notifications are working for your account.",
    )
    db.session.add(notification)
    db.session.commit()
    return {"success": True, "message": "Test notification sent", "data": notification.to_dict()}


def preferences_for(user):
    prefs = get_preferences(user.id)
    db.session.commit()
    return {"success": True, "data": prefs.to_dict()}
