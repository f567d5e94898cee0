from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

MONTHS_SHORT = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
MONTHS_LONG = ["January", "February", "March", "April", "May", "June", "July",
               "August", "September", "October", "November", "December"]

# 프로필 심사 상태별 표시 정보
PROFILE_STATUS_CONFIG = {
    "VERIFIED": {"label": "Verified", "color": "emerald", "icon": "check-circle"},
    "REJECTED": {"label": "Rejected", "color": "red", "icon": "x-circle"},
    "PENDING_VERIFICATION": {"label": "Pending", "color": "amber", "icon": "clock"},
    "INCOMPLETE": {"label": "Incomplete", "color": "slate", "icon": "alert-triangle"},
}

ORDER_STATUS_CONFIG = {
    "ACTIVE": {"label": "Active", "color": "green"},
    "USED": {"label": "Used", "color": "blue"},
    "EXPIRED": {"label": "Expired", "color": "rose"},
}

GRADIENT_CSS = {
    "TOP_RIGHT": "to top right",
    "LEFT_RIGHT": "to top left",
    "TOP_BOTTOM": "to bottom right",
    "BOTTOM_LEFT": "to bottom left",
}


def _to_datetime(value):
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _indian_grouping(digits):
    # 인도식 자릿수: 끝 3자리 후 2자리씩 (12,34,567)
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_currency(amount, symbol="₹"):
    """
    en-IN 통화 표기. 예: 123456.5 -> '₹1,23,456.50'
    """
    value = Decimal(str(amount if amount not in (None, "") else 0))
    value = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    whole, fraction = f"{abs(value):.2f}".split(".")
    return f"{sign}{symbol}{_indian_grouping(whole)}.{fraction}"


def format_date(value):
    """'Jan 5, 2026'"""
    dt = _to_datetime(value)
    return f"{MONTHS_SHORT[dt.month - 1]} {dt.day}, {dt.year}"


def _clock(dt, lower=False):
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    if lower:
        return f"{hour:02d}:{dt.minute:02d} {suffix.lower()}"
    return f"{hour}:{dt.minute:02d} {suffix}"


def format_date_time(value):
    """'Jan 5, 2026 at 3:04 PM'"""
    dt = _to_datetime(value)
    return f"{format_date(dt)} at {_clock(dt)}"


def format_long_date_time(value):
    """'5 January 2026, 03:04 pm' (en-IN 긴 형식)"""
    dt = _to_datetime(value)
    return f"{dt.day} {MONTHS_LONG[dt.month - 1]} {dt.year}, {_clock(dt, lower=True)}"


def format_location(city=None, state=None, country=None):
    return ", ".join(part for part in (city, state, country) if part)


def business_initials(business_name):
    return (business_name or "")[:2].upper()


def mask_phone(phone):
    """10자리 번호를 'XXX-***-XXXX' 형태로 마스킹"""
    digits = "".join(filter(str.isdigit, phone or ""))
    if len(digits) < 10:
        return phone
    digits = digits[-10:]
    return f"{digits[:3]}-***-{digits[6:]}"


def profile_status_config(status):
    return PROFILE_STATUS_CONFIG.get(status, PROFILE_STATUS_CONFIG["INCOMPLETE"])


def order_status_config(status):
    return ORDER_STATUS_CONFIG.get(status, {"label": status or "Unknown", "color": "gray"})


def can_edit_merchant(profile_status):
    return profile_status == "VERIFIED"


def format_hex_color(color):
    if not color.startswith("#"):
        color = "#" + color
    return color.upper()


def contrast_color(hex_color):
    """배경색 기준 가독성 높은 글자색 ('black' / 'white')"""
    value = hex_color.replace("#", "")
    r, g, b = int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return "black" if luminance > 0.5 else "white"


def gradient_css(primary_color, secondary_color, direction):
    css_direction = GRADIENT_CSS.get(direction, "to bottom right")
    return f"linear-gradient({css_direction}, {primary_color}, {secondary_color})"
