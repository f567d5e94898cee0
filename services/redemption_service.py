import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import or_
from flask import current_app
from models import db, PurchasedGiftCards, Redemptions
from services.validators import parse_amount, validate_redemption_input, clean_text
from services.qr_service import extract_purchase_id
from services.otp_service import verify_otp, verified_otp_for
from services.purchase_service import find_by_qr, refresh_status, merchant_summary
from services.notification_service import create_notification, notify_admins
from services.activity_log_service import log_activity
from services.export_service import parse_date_param
from services.formatting import format_currency, format_date_time

RECENT_REDEMPTIONS = 5


def redeem(user, data):
    """
    기프트카드 사용 (잔액 차감).
    data: qrCode, amount, locationName, locationAddress, notes, otp(선택)
    otp 가 있으면 먼저 확인 후 차감
    """
    qr_code = clean_text(data, "qrCode")
    if not qr_code:
        return {"success": False, "message": "QR code is required"}

    purchase = find_by_qr(qr_code)
    if not purchase or str(purchase.id) != extract_purchase_id(qr_code):
        return {"success": False, "message": "Gift card not found", "status": 404}
    if user.role != 'ADMIN' and purchase.merchant_id != user.id:
        return {"success": False, "message": "This gift card belongs to another merchant", "status": 403}

    if refresh_status(purchase):
        db.session.commit()
    if purchase.status != 'ACTIVE':
        return {"success": False, "message": f"Gift card is {purchase.status.lower()} and cannot be redeemed"}

    location_name = clean_text(data, "locationName")
    location_address = clean_text(data, "locationAddress")
    error = validate_redemption_input(data.get("amount"), purchase.current_balance,
                                      location_name, location_address)
    if error:
        return {"success": False, "message": error}

    # 1. 인증번호 확인 (함께 전달된 경우)
    if data.get("otp"):
        otp_result = verify_otp(user, purchase.id, data["otp"])
        if not otp_result["success"]:
            return otp_result

    otp_record = verified_otp_for(purchase.id)
    if not otp_record:
        return {"success": False, "message": "OTP verification required before redemption", "status": 403}

    # 2. 잔액 차감
    amount = parse_amount(data.get("amount")).quantize(Decimal("0.01"))
    now = datetime.now()
    balance_before = purchase.current_balance
    balance_after = balance_before - amount

    redemption = Redemptions(
        purchase_id=purchase.id,
        redeemed_by_id=user.id,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        location_name=location_name,
        location_address=location_address,
        notes=clean_text(data, "notes") or None,
        transaction_id=f"RD-{uuid.uuid4().hex[:12].upper()}",
        status='COMPLETED',
        redeemed_at=now,
    )
    db.session.add(redemption)

    purchase.current_balance = balance_after
    purchase.total_redeemed = (purchase.total_redeemed or 0) + amount
    purchase.last_used_at = now
    if balance_after <= 0:
        purchase.status = 'USED'
    otp_record.consumed_at = now

    # 3. 알림 / 로그
    amount_text = format_currency(amount)
    if purchase.merchant:
        create_notification(purchase.merchant, "GIFT_CARD_REDEEMED", "Gift card redeemed",
                            f"{amount_text} redeemed from {purchase.qr_code} at {location_name} "
                            f"on {format_date_time(now)}.",
                            "PURCHASE", purchase.id, actor=user)
    notify_admins("REDEMPTION_MADE", "Redemption made",
                  f"{amount_text} redeemed from {purchase.qr_code}.", "PURCHASE", purchase.id, actor=user)
    log_activity("GIFT_CARD_REDEEMED", "REDEMPTION", f"{amount_text} redeemed from {purchase.qr_code}",
                 actor=user, resource_type="PURCHASE", resource_id=purchase.id, merchant_id=purchase.merchant_id,
                 metadata={"amount": str(amount), "balanceAfter": str(balance_after),
                           "transactionId": redemption.transaction_id})

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Redemption failed for {purchase.qr_code}: {e}")
        return {"success": False, "message": "Redemption failed. Please try again.", "status": 500}

    current_app.logger.info(f"Redeemed {amount} from {purchase.qr_code} (balance {balance_after})")
    return {
        "success": True,
        "message": "Gift card redeemed successfully",
        "data": {
            "transactionId": redemption.transaction_id,
            "redeemedAmount": float(amount),
            "remainingBalance": float(balance_after),
            "redeemedAt": now.isoformat(),
        },
    }


def redemptions_query(user, search=None, start_date=None, end_date=None):
    query = Redemptions.query.join(PurchasedGiftCards)
    if user.role != 'ADMIN':
        query = query.filter(PurchasedGiftCards.merchant_id == user.id)
    start = parse_date_param(start_date)
    end = parse_date_param(end_date, end_of_day=True)
    if start:
        query = query.filter(Redemptions.redeemed_at >= start)
    if end:
        query = query.filter(Redemptions.redeemed_at <= end)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            PurchasedGiftCards.qr_code.ilike(like),
            PurchasedGiftCards.customer_name.ilike(like),
            Redemptions.location_name.ilike(like),
            Redemptions.transaction_id.ilike(like),
        ))
    return query.order_by(Redemptions.redeemed_at.desc(), Redemptions.id.desc())


def list_redemptions(user, search=None, start_date=None, end_date=None, page=1, limit=10):
    pagination = redemptions_query(user, search, start_date, end_date) \
        .paginate(page=page, per_page=limit, error_out=False)
    return {
        "success": True,
        "data": [r.to_dict(include_purchase=True) for r in pagination.items],
        "pagination": {"total": pagination.total, "page": page, "limit": limit,
                       "totalPages": pagination.pages},
    }


def _purchase_with_redemptions(purchase):
    data = purchase.to_dict()
    data["merchant"] = merchant_summary(purchase)
    data["recentRedemptions"] = [r.to_dict() for r in purchase.redemptions[:RECENT_REDEMPTIONS]]
    data["redemptionCount"] = len(purchase.redemptions)
    return data


def _owned_purchase(user, purchase):
    return purchase is not None and (user.role == 'ADMIN' or purchase.merchant_id == user.id)


def history_by_qr(user, qr_code):
    purchase = find_by_qr(qr_code)
    if not _owned_purchase(user, purchase):
        return {"success": False, "message": "Gift card not found", "status": 404}
    return {"success": True, "message": "Redemption history fetched",
            "data": {"purchase": _purchase_with_redemptions(purchase)}}


def history_by_purchase(user, purchase_id):
    purchase = db.session.get(PurchasedGiftCards, purchase_id)
    if not _owned_purchase(user, purchase):
        return {"success": False, "message": "Purchase not found", "status": 404}
    return {"success": True, "message": "Redemption history fetched",
            "data": {"purchase": _purchase_with_redemptions(purchase)}}


def history_redemptions_for_qr(user, qr_code):
    """CSV 내보내기용 (구매건, 사용내역 목록)"""
    purchase = find_by_qr(qr_code)
    if not _owned_purchase(user, purchase):
        return None, []
    return purchase, list(purchase.redemptions)
