import re
from decimal import Decimal, InvalidOperation

PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
WEBSITE_RE = re.compile(r"^https?://.+")
IFSC_RE = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
SWIFT_RE = re.compile(r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$")
HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

MAX_DESCRIPTION_LENGTH = 2000

PASSWORD_REQUIREMENTS = [
    ("At least 8 characters long", lambda pwd: len(pwd) >= 8),
    ("Contains at least one uppercase letter", lambda pwd: re.search(r"[A-Z]", pwd) is not None),
    ("Contains at least one lowercase letter", lambda pwd: re.search(r"[a-z]", pwd) is not None),
    ("Contains at least one number", lambda pwd: re.search(r"[0-9]", pwd) is not None),
]


def is_valid_email(value):
    return bool(value) and len(value) <= 255 and EMAIL_RE.match(value) is not None


def clean_text(data, key):
    value = data.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _check_length(errors, data, key, label, max_len, required=False):
    value = clean_text(data, key)
    if required and not value:
        errors[key] = f"{label} is required"
    elif len(value) > max_len:
        errors[key] = f"{label} must be at most {max_len} characters"


def validate_business_details(data):
    """
    프로필 1단계 (사업자 정보) 검증.
    반환값: {필드명: 오류 메시지} (비어 있으면 통과)
    """
    errors = {}
    _check_length(errors, data, "businessName", "Business name", 255, required=True)
    _check_length(errors, data, "businessRegistrationNumber", "Registration number", 100, required=True)
    _check_length(errors, data, "taxId", "Tax ID", 100)
    _check_length(errors, data, "businessType", "Business type", 100)
    _check_length(errors, data, "businessCategory", "Business category", 100)
    _check_length(errors, data, "address", "Address", 500, required=True)
    _check_length(errors, data, "city", "City", 100, required=True)
    _check_length(errors, data, "state", "State", 100)
    _check_length(errors, data, "zipCode", "Zip code", 20)
    _check_length(errors, data, "country", "Country", 100, required=True)

    phone = clean_text(data, "businessPhone")
    if phone and not PHONE_RE.match(phone):
        errors["businessPhone"] = ("Invalid phone number format. Use international format "
                                   "(e.g., +919876543210 or 9876543210)")

    email = clean_text(data, "businessEmail")
    if not email:
        errors["businessEmail"] = "Business email is required"
    elif not is_valid_email(email):
        errors["businessEmail"] = ("Invalid email format. Use standard email format "
                                   "(e.g., contact@business.com)")

    website = clean_text(data, "website")
    if website and (not WEBSITE_RE.match(website) or len(website) > 255):
        errors["website"] = "Invalid website URL. Must include protocol (e.g., https://www.example.com)"
    return errors


def validate_bank_details(data):
    """프로필 2단계 (정산 계좌) 검증"""
    errors = {}
    _check_length(errors, data, "bankName", "Bank name", 255)
    _check_length(errors, data, "accountNumber", "Account number", 50)
    _check_length(errors, data, "accountHolderName", "Account holder name", 255)

    ifsc = clean_text(data, "ifscCode")
    if ifsc and not IFSC_RE.match(ifsc):
        errors["ifscCode"] = ("Invalid IFSC code format. Must be 11 characters: 4 uppercase letters + 0 "
                              "+ 6 alphanumeric characters (e.g., SBIN0001234)")

    swift = clean_text(data, "swiftCode")
    if swift and not SWIFT_RE.match(swift):
        errors["swiftCode"] = ("Invalid SWIFT code format. Must be 8 or 11 uppercase characters "
                               "(e.g., SBININBB or SBININBB123)")

    bank_error = validate_bank_info(data)
    if bank_error:
        errors["bankCode"] = bank_error
    return errors


def validate_bank_info(data):
    """계좌 정보를 입력했다면 IFSC 또는 SWIFT 중 하나는 필수"""
    has_bank_info = any(clean_text(data, k) for k in ("bankName", "accountNumber", "accountHolderName"))
    has_bank_code = any(clean_text(data, k) for k in ("ifscCode", "swiftCode"))
    if has_bank_info and not has_bank_code:
        return "Please provide either IFSC Code (for India) or SWIFT Code (for international)"
    return None


def validate_description(data):
    errors = {}
    if len(clean_text(data, "description")) > MAX_DESCRIPTION_LENGTH:
        errors["description"] = (f"Description too long. Maximum {MAX_DESCRIPTION_LENGTH} "
                                 "characters allowed")
    return errors


def validate_profile(data):
    errors = {}
    errors.update(validate_business_details(data))
    errors.update(validate_bank_details(data))
    errors.update(validate_description(data))
    return errors


def password_errors(password):
    password = password or ""
    return [label for label, test in PASSWORD_REQUIREMENTS if not test(password)]


def password_strength(password):
    """충족한 조건 개수 (0~4)"""
    password = password or ""
    return sum(1 for _, test in PASSWORD_REQUIREMENTS if test(password))


def password_strength_label(strength):
    if strength == 2:
        return "Fair"
    if strength == 3:
        return "Good"
    if strength == 4:
        return "Strong"
    return "Weak"


def validate_new_password(new_password, confirm_password, current_password=None):
    """비밀번호 변경/재설정 공통 검증. 오류 메시지 또는 None 반환"""
    missing = password_errors(new_password)
    if missing:
        return f"Password requirements not met: {', '.join(missing)}"
    if new_password != confirm_password:
        return "Passwords don't match"
    if current_password is not None and current_password == new_password:
        return "New password must be different from current password"
    return None


def validate_purchase_form(data):
    errors = {}
    if len(clean_text(data, "customerName")) < 2:
        errors["customerName"] = "Name must be at least 2 characters"
    if not is_valid_email(clean_text(data, "customerEmail")):
        errors["customerEmail"] = "Invalid email address"
    digits = "".join(filter(str.isdigit, clean_text(data, "customerPhone")))
    if len(digits) < 10:
        errors["customerPhone"] = "Phone must be at least 10 digits"
    if not clean_text(data, "paymentMethod"):
        errors["paymentMethod"] = "Payment method is required"
    if not clean_text(data, "transactionId"):
        errors["transactionId"] = "Transaction ID is required"
    return errors


def parse_amount(value):
    """금액 문자열 -> Decimal. 숫자가 아니면 None"""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def is_whole_paise(amount):
    """소수점 둘째 자리까지만 허용"""
    try:
        return amount == amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        return False


def validate_redemption_input(amount, current_balance, location_name, location_address):
    """
    사용 금액/장소 검증 (잔액 범위 포함).
    오류 메시지 또는 None 반환
    """
    redeem_amount = parse_amount(amount)
    if redeem_amount is None or redeem_amount <= 0 or not is_whole_paise(redeem_amount):
        return "Please enter valid amount"
    balance = parse_amount(current_balance) or Decimal("0")
    if redeem_amount > balance:
        return f"Amount cannot exceed current balance (₹{balance.normalize():f})"
    if not (location_name or "").strip() or not (location_address or "").strip():
        return "Please enter location details"
    return None


def is_valid_hex_color(color):
    return bool(color) and HEX_COLOR_RE.match(color) is not None
