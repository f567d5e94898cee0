import copy
from flask import current_app
from models import db, LandingPages, ContactMessages
from services.validators import is_valid_email
from services.notification_service import notify_admins
from services.activity_log_service import log_activity

# 첫 조회 시 저장되는 기본 내용
DEFAULT_CONTENT = {
    "hero": {
        "badge": "Digital gift cards for local businesses",
        "title": "Sell gift cards your customers love",
        "subtitle": "Create, sell and redeem branded gift cards with secure OTP verification.",
        "primaryCTA": {"link": "/register", "label": "Get Started"},
        "secondaryCTA": {"link": "#how-it-works", "label": "How It Works"},
    },
    "stats": [
        {"label": "Active Merchants", "value": "0"},
        {"label": "Gift Cards Sold", "value": "0"},
        {"label": "Satisfaction Rate", "value": "0%"},
    ],
    "steps": [
        {"step": 1, "title": "Register", "description": "Create your merchant account."},
        {"step": 2, "title": "Get Verified", "description": "Submit your business details for review."},
        {"step": 3, "title": "Sell Gift Cards", "description": "Design gift cards and share them with customers."},
    ],
    "features": [
        {"title": "Secure Redemption", "description": "Every redemption is confirmed with a one-time code.",
         "points": ["OTP sent to the customer", "Balance checked on every use"]},
    ],
    "testimonials": {"title": "What merchants say", "subtitle": "", "items": []},
    "faqs": {"title": "Frequently Asked Questions", "subtitle": "", "items": []},
    "contact": {
        "title": "We'd Love to Hear From You",
        "heading": "Contact Us",
        "subtitle": "Questions about gift cards or your account? Send us a message.",
        "responseTime": "2-4 hours",
    },
    "footer": {
        "links": {"legal": ["Privacy Policy", "Terms of Service"], "company": ["About", "Contact"],
                  "product": ["Features", "Pricing"]},
        "copyright": "All rights reserved.",
    },
    "finalCTA": {
        "title": "Ready to start selling gift cards?",
        "subtitle": "Join merchants already growing with digital gift cards.",
        "primaryCTA": {"link": "/register", "label": "Create Account"},
        "secondaryCTA": {"link": "#contact", "label": "Talk to Us"},
    },
    "newsletter": {
        "title": "Stay in the loop",
        "subtitle": "Product updates and tips for merchants.",
        "privacyNote": "We respect your privacy. Unsubscribe anytime.",
    },
    "rawStats": {"activeUsers": 0, "merchants": 0, "giftCardsSold": 0, "revenue": 0, "satisfactionRate": 0},
}

SECTION_TEMPLATES = {
    "faqs": {"question": "", "answer": ""},
    "testimonials": {"name": "", "role": "", "message": ""},
    "steps": {"step": 1, "title": "", "description": ""},
    "features": {"title": "", "description": "", "points": [""]},
    "stats": {"label": "", "value": ""},
}

EXCLUDED_FIELDS = ["rawStats", "items"]
TEXTAREA_FIELDS = ["description", "message", "subtitle", "answer"]


def get_empty_template(section, current_length=0):
    template = copy.deepcopy(SECTION_TEMPLATES.get(section, {}))
    if section == "steps" and "step" in template:
        template["step"] = current_length + 1
    return template


def should_use_textarea(field_name):
    return any(field in field_name for field in TEXTAREA_FIELDS)


def should_exclude_field(field_name):
    return field_name in EXCLUDED_FIELDS


def _has_items(section_data):
    return isinstance(section_data, dict) and isinstance(section_data.get("items"), list)


def get_items_from_section(section_data):
    if _has_items(section_data):
        return section_data["items"]
    if isinstance(section_data, list):
        return section_data
    return []


def update_section_data(section_data, form_data, index=None):
    """
    index 가 없으면 항목 추가, 있으면 교체.
    목록형이 아닌 섹션은 통째로 교체
    """
    if _has_items(section_data) or isinstance(section_data, list):
        items = list(get_items_from_section(section_data))
        if index is None:
            items.append(form_data)
        else:
            items[index] = form_data
        if isinstance(section_data, list):
            return items
        return {**section_data, "items": items}
    return form_data


def delete_item_from_section(section_data, index):
    if _has_items(section_data):
        return {**section_data, "items": [item for i, item in enumerate(section_data["items"]) if i != index]}
    if isinstance(section_data, list):
        return [item for i, item in enumerate(section_data) if i != index]
    return section_data


def _landing_page():
    page = LandingPages.query.order_by(LandingPages.id).first()
    if not page:
        page = LandingPages()
        page.content = DEFAULT_CONTENT
        db.session.add(page)
        db.session.commit()
        current_app.logger.info("Landing page seeded with default content")
    return page


def get_landing():
    return {"success": True, "data": _landing_page().content}


def update_landing(admin, data):
    section = data.get("section")
    if not section or not isinstance(section, str):
        return {"success": False, "message": "Section is required"}

    page = _landing_page()
    content = page.content
    current = content.get(section)
    index = data.get("index")
    if index is not None and (not isinstance(index, int) or isinstance(index, bool)):
        return {"success": False, "message": "Index must be an integer"}

    is_list = _has_items(current) or isinstance(current, list)
    if index is not None:
        if not is_list:
            return {"success": False, "message": f"Section '{section}' does not contain items"}
        if not 0 <= index < len(get_items_from_section(current)):
            return {"success": False, "message": "Item index out of range", "status": 404}

    if data.get("delete"):
        if index is None:
            return {"success": False, "message": "Index is required to delete an item"}
        content[section] = delete_item_from_section(current, index)
        action = "deleted item from"
    else:
        if "data" not in data:
            return {"success": False, "message": "Data is required"}
        if is_list and not isinstance(data["data"], dict):
            return {"success": False, "message": "Item data must be an object"}
        if current is None:
            content[section] = data["data"]
        else:
            content[section] = update_section_data(current, data["data"], index)
        action = "updated"

    page.content = content
    page.updated_by_id = admin.id
    log_activity("LANDING_PAGE_UPDATED", "SYSTEM", f"Landing page section '{section}' {action}", actor=admin,
                 resource_type="LANDING_PAGE", resource_id=page.id, metadata={"section": section, "index": index})
    db.session.commit()
    return {"success": True, "message": "Landing page updated successfully", "data": page.content}


def submit_contact(data):
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip()
    subject = (data.get("subject") or "").strip()
    message = (data.get("message") or "").strip()

    errors = {}
    if not name:
        errors["name"] = "Name is required"
    if not is_valid_email(email):
        errors["email"] = "Valid email is required"
    if not message:
        errors["message"] = "Message is required"
    elif len(message) < 10:
        errors["message"] = "Message must be at least 10 characters"
    if errors:
        return {"success": False, "message": "Validation failed", "errors": errors}

    contact = ContactMessages(name=name, email=email.lower(), subject=subject or None, message=message)
    db.session.add(contact)
    db.session.flush()
    notify_admins("CONTACT_MESSAGE", "New contact message", f"{name}: {subject or message[:50]}",
                  "CONTACT_MESSAGE", contact.id)
    db.session.commit()
    return {"success": True, "message": "Message sent successfully", "data": contact.to_dict(), "status": 201}


def list_contacts(order="desc"):
    column = ContactMessages.created_at
    messages = ContactMessages.query.order_by(column.asc() if order == "asc" else column.desc(),
                                              ContactMessages.id.asc() if order == "asc"
                                              else ContactMessages.id.desc()).all()
    return {"success": True, "data": [m.to_dict() for m in messages]}


def section_template(section):
    """관리자 편집 화면용: 새 항목 템플릿 + 필드별 입력 형식"""
    if should_exclude_field(section):
        return {"success": False, "message": f"Section '{section}' is not editable"}
    current = _landing_page().content.get(section)
    template = get_empty_template(section, len(get_items_from_section(current)))
    sample = template or (current if isinstance(current, dict) else {})
    fields = {
        name: "textarea" if should_use_textarea(name) else "input"
        for name, value in sample.items()
        if not should_exclude_field(name) and isinstance(value, (str, int))
    }
    return {"success": True, "data": {"section": section, "template": template, "fields": fields}}
