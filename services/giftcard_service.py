from datetime import datetime, timedelta
from sqlalchemy import func, or_
from flask import current_app
from models import db, Users, MerchantProfiles, GiftCards, GiftCardSettings
from services.validators import parse_amount, is_whole_paise, is_valid_hex_color
from services.formatting import format_hex_color, gradient_css, contrast_color
from services.notification_service import create_notification
from services.activity_log_service import log_activity

SORT_COLUMNS = {
    "createdAt": GiftCards.created_at,
    "price": GiftCards.price,
    "title": GiftCards.title,
    "expiryDate": GiftCards.expiry_date,
}

FONT_OPTIONS = ["Inter", "Roboto", "Poppins", "Montserrat", "Open Sans", "Lato"]
GRADIENT_DIRECTIONS = ["TOP_RIGHT", "LEFT_RIGHT", "TOP_BOTTOM", "BOTTOM_LEFT"]

EXPIRING_SOON_DAYS = 30


def parse_expiry(value):
    """'YYYY-MM-DD' 또는 ISO 형식. 날짜만 있으면 그날 23:59:59"""
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo:
        parsed = parsed.astimezone().replace(tzinfo=None)
    if len(text) == 10:
        parsed = parsed.replace(hour=23, minute=59, second=59)
    return parsed


def _validate_card_input(data, partial=False):
    cleaned = {}
    if not partial or "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            return None, "Title is required"
        if len(title) > 255:
            return None, "Title must be at most 255 characters"
        cleaned["title"] = title
    if "description" in data:
        cleaned["description"] = (data.get("description") or "").strip() or None
    if not partial or "price" in data:
        price = parse_amount(data.get("price"))
        if price is None or price <= 0:
            return None, "Price must be greater than 0"
        if not is_whole_paise(price):
            return None, "Price can have at most 2 decimal places"
        cleaned["price"] = price
    if not partial or "expiryDate" in data:
        expiry = parse_expiry(data.get("expiryDate"))
        if not expiry:
            return None, "A valid expiry date is required"
        if expiry <= datetime.now():
            return None, "Expiry date must be in the future"
        cleaned["expiry_date"] = expiry
    if "isActive" in data:
        cleaned["is_active"] = bool(data.get("isActive"))
    return cleaned, None


def _get_own_card(user, card_id):
    card = db.session.get(GiftCards, card_id)
    if not card or (user.role != 'ADMIN' and card.merchant_id != user.id):
        return None
    return card


def create_gift_card(user, data):
    if not user.is_verified:
        return {"success": False, "message": "Your profile must be verified before creating gift cards",
                "status": 403}

    limit = current_app.config['GIFT_CARD_LIMIT']
    if GiftCards.query.filter_by(merchant_id=user.id).count() >= limit:
        return {"success": False, "message": f"Gift card limit reached ({limit})", "status": 409}

    cleaned, error = _validate_card_input(data)
    if error:
        return {"success": False, "message": error}

    card = GiftCards(merchant_id=user.id, **cleaned)
    db.session.add(card)
    db.session.flush()
    log_activity("GIFT_CARD_CREATED", "GIFT_CARD", f"Gift card '{card.title}' created", actor=user,
                 resource_type="GIFT_CARD", resource_id=card.id, merchant_id=user.id)
    db.session.commit()
    return {"success": True, "message": "Gift card created successfully", "data": card.to_dict(), "status": 201}


def update_gift_card(user, card_id, data):
    card = _get_own_card(user, card_id)
    if not card:
        return {"success": False, "message": "Gift card not found", "status": 404}

    cleaned, error = _validate_card_input(data, partial=True)
    if error:
        return {"success": False, "message": error}

    for key, value in cleaned.items():
        setattr(card, key, value)
    log_activity("GIFT_CARD_UPDATED", "GIFT_CARD", f"Gift card '{card.title}' updated", actor=user,
                 resource_type="GIFT_CARD", resource_id=card.id, merchant_id=card.merchant_id,
                 metadata={"fields": sorted(cleaned)})
    db.session.commit()
    return {"success": True, "message": "Gift card updated successfully", "data": card.to_dict()}


def delete_gift_card(user, card_id):
    """판매 이력이 있는 카드는 삭제 대신 비활성화"""
    card = _get_own_card(user, card_id)
    if not card:
        return {"success": False, "message": "Gift card not found", "status": 404}

    if card.purchases:
        card.is_active = False
        message = "Gift card has purchases and was deactivated instead of deleted"
        action = "GIFT_CARD_DEACTIVATED"
    else:
        db.session.delete(card)
        message = "Gift card deleted successfully"
        action = "GIFT_CARD_DELETED"
    log_activity(action, "GIFT_CARD", f"Gift card '{card.title}': {message}", actor=user,
                 resource_type="GIFT_CARD", resource_id=card_id, merchant_id=card.merchant_id)
    db.session.commit()
    return {"success": True, "message": message}


def get_gift_card(card_id, user=None):
    card = db.session.get(GiftCards, card_id)
    if not card:
        return {"success": False, "message": "Gift card not found", "status": 404}
    # 비공개 카드는 소유 가맹점/관리자만 조회
    is_owner = user is not None and (user.role == 'ADMIN' or user.id == card.merchant_id)
    if not is_owner and card.status != 'ACTIVE':
        return {"success": False, "message": "Gift card not found", "status": 404}
    data = card.to_dict()
    settings = GiftCardSettings.query.filter_by(merchant_id=card.merchant_id).first()
    data["settings"] = settings.to_dict() if settings else None
    return {"success": True, "data": data}


def merchant_cards_query(merchant_id, search=None, sort_by="createdAt", sort_order="desc"):
    query = GiftCards.query.filter(GiftCards.merchant_id == merchant_id)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(GiftCards.title.ilike(like), GiftCards.description.ilike(like)))
    column = SORT_COLUMNS.get(sort_by, GiftCards.created_at)
    return query.order_by(column.asc() if sort_order == "asc" else column.desc())


def list_merchant_cards(user, search=None, sort_by="createdAt", sort_order="desc", page=1, limit=10):
    pagination = merchant_cards_query(user.id, search, sort_by, sort_order) \
        .paginate(page=page, per_page=limit, error_out=False)

    now = datetime.now()
    all_cards = GiftCards.query.filter_by(merchant_id=user.id)
    total = all_cards.count()
    active = all_cards.filter(GiftCards.is_active.is_(True), GiftCards.expiry_date >= now).count()
    expiring = all_cards.filter(GiftCards.is_active.is_(True), GiftCards.expiry_date >= now,
                                GiftCards.expiry_date <= now + timedelta(days=EXPIRING_SOON_DAYS)).count()
    total_value = db.session.query(func.coalesce(func.sum(GiftCards.price), 0)) \
        .filter(GiftCards.merchant_id == user.id).scalar()
    limit_allowed = current_app.config['GIFT_CARD_LIMIT']
    settings = GiftCardSettings.query.filter_by(merchant_id=user.id).all()

    return {
        "success": True,
        "message": "Gift cards fetched successfully",
        "data": {
            "giftCards": [card.to_dict() for card in pagination.items],
            "settings": [s.to_dict() for s in settings],
            "pagination": {"total": pagination.total, "page": page, "limit": limit,
                           "totalPages": pagination.pages},
            "filters": {"search": search or None, "sortBy": sort_by, "sortOrder": sort_order},
            "totalGiftCards": total,
            "activeCards": active,
            "totalValue": f"{total_value:.2f}",
            "expiringSoon": expiring,
            "limitAllowed": limit_allowed,
            "remaining": max(limit_allowed - total, 0),
        },
    }


def _public_query():
    return GiftCards.query.join(Users, GiftCards.merchant_id == Users.id) \
        .join(MerchantProfiles, MerchantProfiles.user_id == Users.id) \
        .filter(GiftCards.is_active.is_(True),
                GiftCards.expiry_date >= datetime.now(),
                Users.is_active.is_(True),
                MerchantProfiles.profile_status == 'VERIFIED')


def public_active_cards():
    cards = _public_query().order_by(GiftCards.created_at.desc()).all()
    return {"success": True, "data": {"giftCards": [card.to_dict() for card in cards]}}


def public_merchant_cards(merchant_id):
    cards = _public_query().filter(GiftCards.merchant_id == merchant_id) \
        .order_by(GiftCards.created_at.desc()).all()
    settings = GiftCardSettings.query.filter_by(merchant_id=merchant_id).first()
    return {"success": True, "data": {"giftCards": [card.to_dict() for card in cards],
                                      "settings": settings.to_dict() if settings else None}}


def _settings_dict(settings):
    data = settings.to_dict()
    # 카드 미리보기 (배경 그라데이션, 글자색)
    data["preview"] = {
        "background": gradient_css(settings.primary_color, settings.secondary_color, settings.gradient_direction),
        "textColor": contrast_color(settings.primary_color),
    }
    return data


def get_settings(user):
    settings = GiftCardSettings.query.filter_by(merchant_id=user.id).first()
    if not settings:
        return {"success": True, "message": "Default settings", "data": _settings_dict(GiftCardSettings(
            merchant_id=user.id, primary_color='#F54927', secondary_color='#46368A',
            gradient_direction='TOP_RIGHT', font_family='Inter'))}
    return {"success": True, "data": _settings_dict(settings)}


def save_settings(user, data):
    """카드 디자인 설정 저장 (없으면 생성)"""
    updates = {}
    for key, column in (("primaryColor", "primary_color"), ("secondaryColor", "secondary_color")):
        if key in data:
            color = format_hex_color((data.get(key) or "").strip())
            if not is_valid_hex_color(color):
                return {"success": False, "message": f"{key} must be a hex color like #F54927"}
            updates[column] = color
    if "gradientDirection" in data:
        if data["gradientDirection"] not in GRADIENT_DIRECTIONS:
            return {"success": False, "message": "Invalid gradient direction"}
        updates["gradient_direction"] = data["gradientDirection"]
    if "fontFamily" in data:
        if data["fontFamily"] not in FONT_OPTIONS:
            return {"success": False, "message": "Unsupported font family"}
        updates["font_family"] = data["fontFamily"]

    settings = GiftCardSettings.query.filter_by(merchant_id=user.id).first()
    created = settings is None
    if created:
        settings = GiftCardSettings(merchant_id=user.id)
        db.session.add(settings)
    for column, value in updates.items():
        setattr(settings, column, value)
    db.session.commit()
    return {"success": True, "message": "Gift card settings saved", "data": _settings_dict(settings),
            "status": 201 if created else 200}


def notify_merchant(data):
    """방문자가 가맹점에 기프트카드 등록 요청"""
    merchant_id = data.get("merchantId")
    merchant = db.session.get(Users, merchant_id) if merchant_id else None
    if not merchant or merchant.role != 'MERCHANT':
        return {"success": False, "message": "Merchant not found", "status": 404}

    name = (data.get("name") or "A customer").strip()
    email = (data.get("email") or "").strip()
    message = (data.get("message") or "").strip() or "is interested in buying your gift cards."
    create_notification(merchant, "PURCHASE_MADE", "Customer interest",
                        f"{name}{f' ({email})' if email else ''} {message}", "MERCHANT", merchant.id)
    db.session.commit()
    return {"success": True, "message": "The merchant has been notified"}


