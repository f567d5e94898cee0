from datetime import datetime
from sqlalchemy import or_
from flask import current_app
from models import db, GiftCards, PurchasedGiftCards
from services.validators import validate_purchase_form, is_valid_email, clean_text
from services.qr_service import generate_qr_code
from services.notification_service import create_notification, notify_admins
from services.activity_log_service import log_activity
from services.formatting import format_currency, format_date, format_long_date_time, order_status_config

ORDER_STATUSES = ["ACTIVE", "USED", "EXPIRED"]


def refresh_status(purchase):
    """만료일이 지난 구매건은 EXPIRED 로 전환. 변경 여부 반환"""
    if purchase.status == 'ACTIVE' and purchase.expires_at and purchase.expires_at < datetime.now():
        purchase.status = 'EXPIRED'
        return True
    return False


def purchase_gift_card(gift_card_id, data):
    """
    고객 기프트카드 구매 -> QR 코드 발급
    """
    card = db.session.get(GiftCards, gift_card_id)
    if not card or card.status != 'ACTIVE':
        return {"success": False, "message": "Gift card is not available for purchase", "status": 404}

    merchant = card.merchant
    if not merchant or not merchant.is_active or not merchant.is_verified:
        return {"success": False, "message": "Gift card is not available for purchase", "status": 404}

    errors = validate_purchase_form(data)
    if errors:
        return {"success": False, "message": "Validation failed", "errors": errors}

    purchase = PurchasedGiftCards(
        gift_card_id=card.id,
        merchant_id=card.merchant_id,
        customer_name=clean_text(data, "customerName"),
        customer_email=clean_text(data, "customerEmail").lower(),
        purchase_amount=card.price,
        current_balance=card.price,
        total_redeemed=0,
        payment_method=clean_text(data, "paymentMethod"),
        transaction_id=clean_text(data, "transactionId"),
        payment_status='COMPLETED',
        status='ACTIVE',
        purchased_at=datetime.now(),
        expires_at=card.expiry_date,
    )
    purchase.customer_phone = clean_text(data, "customerPhone")
    db.session.add(purchase)
    db.session.flush()
    purchase.qr_code = generate_qr_code(purchase.id)

    amount_text = format_currency(card.price)
    create_notification(merchant, "GIFT_CARD_PURCHASED", "Gift card purchased",
                        f"{purchase.customer_name} purchased '{card.title}' for {amount_text}. "
                        f"Valid until {format_date(purchase.expires_at)}.",
                        "PURCHASE", purchase.id)
    notify_admins("PURCHASE_MADE", "New purchase",
                  f"'{card.title}' purchased for {amount_text}.", "PURCHASE", purchase.id)
    log_activity("GIFT_CARD_PURCHASED", "PURCHASE", f"Purchase {purchase.qr_code} of '{card.title}'",
                 resource_type="PURCHASE", resource_id=purchase.id, merchant_id=card.merchant_id,
                 metadata={"amount": str(card.price), "paymentMethod": purchase.payment_method})

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Purchase failed: {e}")
        return {"success": False, "message": "Purchase could not be completed. Please try again.", "status": 500}

    current_app.logger.info(f"Purchase created: {purchase.qr_code}")
    data = purchase.to_dict()
    data["code"] = purchase.qr_code
    return {"success": True, "message": "Gift card purchased successfully", "data": data, "status": 201}


def find_by_qr(qr_code):
    return PurchasedGiftCards.query.filter_by(qr_code=(qr_code or "").strip()).first()


def merchant_summary(purchase):
    profile = purchase.merchant.merchant_profile if purchase.merchant else None
    if not profile:
        return None
    return {
        "businessName": profile.business_name,
        "businessPhone": profile.business_phone,
        "address": profile.address,
        "city": profile.city,
    }


def lookup_balance(qr_code):
    purchase = find_by_qr(qr_code)
    if not purchase:
        return {"success": False, "message": "Gift card not found", "status": 404}
    if refresh_status(purchase):
        db.session.commit()

    data = purchase.to_dict()
    data["merchant"] = merchant_summary(purchase)
    data["redemptionCount"] = len(purchase.redemptions)
    data["display"] = {
        "balance": format_currency(purchase.current_balance),
        "expiresOn": format_long_date_time(purchase.expires_at) if purchase.expires_at else None,
    }
    return {"success": True, "data": data}


def customer_purchases(email):
    email = (email or "").strip().lower()
    if not is_valid_email(email):
        return {"success": False, "message": "Invalid email address"}
    purchases = PurchasedGiftCards.query.filter_by(customer_email=email) \
        .order_by(PurchasedGiftCards.purchased_at.desc()).all()
    changed = [refresh_status(p) for p in purchases]
    if any(changed):
        db.session.commit()
    return {"success": True, "data": {"purchases": [p.to_dict() for p in purchases]}}


def orders_query(merchant_id, search=None, status=None, sort_order="desc"):
    query = PurchasedGiftCards.query.filter(PurchasedGiftCards.merchant_id == merchant_id)
    if status:
        query = query.filter(PurchasedGiftCards.status == status)
    if search:
        like = f"%{search}%"
        query = query.join(GiftCards).filter(or_(
            PurchasedGiftCards.customer_name.ilike(like),
            PurchasedGiftCards.customer_email.ilike(like),
            PurchasedGiftCards.qr_code.ilike(like),
            GiftCards.title.ilike(like),
        ))
    order = PurchasedGiftCards.purchased_at.asc() if sort_order == "asc" else PurchasedGiftCards.purchased_at.desc()
    return query.order_by(order)


def list_orders(user, search=None, status=None, sort_order="desc", page=1, limit=10):
    pagination = orders_query(user.id, search, status, sort_order) \
        .paginate(page=page, per_page=limit, error_out=False)
    orders = []
    for purchase in pagination.items:
        item = purchase.to_dict()
        item["orderId"] = purchase.id
        item["customer"] = {"name": purchase.customer_name, "email": purchase.customer_email,
                            "phone": purchase.customer_phone}
        item["amount"] = item["purchaseAmount"]
        item["statusBadge"] = order_status_config(purchase.status)
        orders.append(item)
    return {
        "success": True,
        "data": {
            "orders": orders,
            "pagination": {"total": pagination.total, "page": page, "limit": limit,
                           "totalPages": pagination.pages},
        },
    }
