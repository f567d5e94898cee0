from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
import json
from config import encrypt_data, decrypt_data

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return f"{value:.2f}" if value is not None else None


class Users(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(30))
    role = db.Column(db.String(20), nullable=False, default='MERCHANT')  # ADMIN / MERCHANT
    password_hash = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, default=True)  # 정지(suspend) 시 False
    is_first_time = db.Column(db.Boolean, default=True)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.now)
    merchant_profile = db.relationship('MerchantProfiles', backref='user', uselist=False, lazy=True)

    @property
    def is_verified(self):
        if self.role == 'ADMIN':
            return True
        return bool(self.merchant_profile and self.merchant_profile.profile_status == 'VERIFIED')

    def to_dict(self, include_profile=True):
        data = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "isActive": self.is_active,
            "isVerified": self.is_verified,
            "isFirstTime": self.is_first_time,
            "createdAt": _iso(self.created_at),
        }
        if include_profile and self.merchant_profile:
            data["merchantProfile"] = self.merchant_profile.to_dict()
        return data


class MerchantProfiles(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)

    # 1단계: 사업자 정보
    business_name = db.Column(db.String(255), nullable=False)
    business_registration_number = db.Column(db.String(100))
    tax_id = db.Column(db.String(100))
    business_type = db.Column(db.String(100))
    business_category = db.Column(db.String(100))
    address = db.Column(db.String(500))
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))
    zip_code = db.Column(db.String(20))
    country = db.Column(db.String(100), default='India')
    business_phone = db.Column(db.String(20))
    business_email = db.Column(db.String(255))
    website = db.Column(db.String(255))

    # 2단계: 정산 계좌
    bank_name = db.Column(db.String(255))
    _account_number = db.Column("account_number", db.String(255))
    account_holder_name = db.Column(db.String(255))
    ifsc_code = db.Column(db.String(11))
    swift_code = db.Column(db.String(11))

    @property
    def account_number(self):
        return decrypt_data(self._account_number)

    @account_number.setter
    def account_number(self, value):
        self._account_number = encrypt_data(value)

    # 3단계: 소개 및 서류
    description = db.Column(db.Text)
    logo = db.Column(db.String(255))
    identity_document = db.Column(db.String(255))
    registration_document = db.Column(db.String(255))
    tax_document = db.Column(db.String(255))

    # 심사 상태: INCOMPLETE / PENDING_VERIFICATION / VERIFIED / REJECTED
    profile_status = db.Column(db.String(30), nullable=False, default='INCOMPLETE')
    rejection_reason = db.Column(db.Text)
    verification_notes = db.Column(db.Text)
    submitted_at = db.Column(db.DateTime)
    verified_at = db.Column(db.DateTime)
    rejected_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def masked_account_number(self):
        number = self.account_number
        if not number:
            return None
        return "*" * max(len(number) - 4, 0) + number[-4:]

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "businessName": self.business_name,
            "businessRegistrationNumber": self.business_registration_number,
            "taxId": self.tax_id,
            "businessType": self.business_type,
            "businessCategory": self.business_category,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "country": self.country,
            "businessPhone": self.business_phone,
            "businessEmail": self.business_email,
            "website": self.website,
            "bankName": self.bank_name,
            "accountNumber": self.masked_account_number(),
            "accountHolderName": self.account_holder_name,
            "ifscCode": self.ifsc_code,
            "swiftCode": self.swift_code,
            "description": self.description,
            "logo": self.logo,
            "documents": {
                "identityDocument": self.identity_document,
                "registrationDocument": self.registration_document,
                "taxDocument": self.tax_document,
            },
            "profileStatus": self.profile_status,
            "isVerified": self.profile_status == 'VERIFIED',
            "rejectionReason": self.rejection_reason,
            "verificationNotes": self.verification_notes,
            "submittedAt": _iso(self.submitted_at),
            "verifiedAt": _iso(self.verified_at),
            "rejectedAt": _iso(self.rejected_at),
        }


class GiftCards(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    expiry_date = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)
    merchant = db.relationship('Users', lazy=True)
    purchases = db.relationship('PurchasedGiftCards', backref='gift_card', lazy=True)

    @property
    def status(self):
        if self.expiry_date and self.expiry_date < datetime.now():
            return 'EXPIRED'
        return 'ACTIVE' if self.is_active else 'INACTIVE'

    def to_dict(self):
        profile = self.merchant.merchant_profile if self.merchant else None
        return {
            "id": self.id,
            "merchantId": self.merchant_id,
            "title": self.title,
            "description": self.description,
            "price": _money(self.price),
            "expiryDate": _iso(self.expiry_date),
            "isActive": self.is_active,
            "status": self.status,
            "merchantLogo": profile.logo if profile else None,
            "merchant": {
                "id": self.merchant_id,
                "name": self.merchant.name if self.merchant else None,
                "merchantProfile": {
                    "businessName": profile.business_name,
                    "logo": profile.logo,
                } if profile else None,
            },
            "_count": {"purchases": len(self.purchases)},
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class GiftCardSettings(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    primary_color = db.Column(db.String(7), default='#F54927')
    secondary_color = db.Column(db.String(7), default='#46368A')
    gradient_direction = db.Column(db.String(20), default='TOP_RIGHT')
    font_family = db.Column(db.String(50), default='Inter')
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "merchantId": self.merchant_id,
            "primaryColor": self.primary_color,
            "secondaryColor": self.secondary_color,
            "gradientDirection": self.gradient_direction,
            "fontFamily": self.font_family,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class PurchasedGiftCards(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    gift_card_id = db.Column(db.Integer, db.ForeignKey('gift_cards.id'), nullable=False)
    merchant_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    qr_code = db.Column(db.String(64), unique=True, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False, index=True)
    _customer_phone = db.Column("customer_phone", db.String(255))

    @property
    def customer_phone(self):
        return decrypt_data(self._customer_phone)

    @customer_phone.setter
    def customer_phone(self, value):
        self._customer_phone = encrypt_data(value)

    purchase_amount = db.Column(db.Numeric(12, 2), nullable=False)
    current_balance = db.Column(db.Numeric(12, 2), nullable=False)
    total_redeemed = db.Column(db.Numeric(12, 2), default=0)
    payment_method = db.Column(db.String(50))
    transaction_id = db.Column(db.String(100))
    payment_status = db.Column(db.String(20), default='COMPLETED')
    status = db.Column(db.String(20), default='ACTIVE')  # ACTIVE / USED / EXPIRED
    purchased_at = db.Column(db.DateTime, default=datetime.now)
    expires_at = db.Column(db.DateTime)
    last_used_at = db.Column(db.DateTime)
    merchant = db.relationship('Users', lazy=True)
    redemptions = db.relationship('Redemptions', backref='purchase', lazy=True,
                                  order_by='Redemptions.redeemed_at.desc()')

    def to_dict(self):
        return {
            "id": self.id,
            "qrCode": self.qr_code,
            "giftCardId": self.gift_card_id,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
            "purchaseAmount": _money(self.purchase_amount),
            "currentBalance": _money(self.current_balance),
            "totalRedeemed": _money(self.total_redeemed or 0),
            "paymentMethod": self.payment_method,
            "transactionId": self.transaction_id,
            "paymentStatus": self.payment_status,
            "status": self.status,
            "purchasedAt": _iso(self.purchased_at),
            "expiresAt": _iso(self.expires_at),
            "lastUsedAt": _iso(self.last_used_at),
            "giftCard": {
                "id": self.gift_card.id,
                "title": self.gift_card.title,
                "price": _money(self.gift_card.price),
                "description": self.gift_card.description,
            } if self.gift_card else None,
        }


class Redemptions(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey('purchased_gift_cards.id'), nullable=False, index=True)
    redeemed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    balance_before = db.Column(db.Numeric(12, 2), nullable=False)
    balance_after = db.Column(db.Numeric(12, 2), nullable=False)
    location_name = db.Column(db.String(255))
    location_address = db.Column(db.String(500))
    notes = db.Column(db.Text)
    transaction_id = db.Column(db.String(64), unique=True)
    status = db.Column(db.String(20), default='COMPLETED')
    redeemed_at = db.Column(db.DateTime, default=datetime.now)
    redeemed_by = db.relationship('Users', lazy=True)

    def to_dict(self, include_purchase=False):
        data = {
            "id": self.id,
            "purchaseId": self.purchase_id,
            "qrCode": self.purchase.qr_code if self.purchase else None,
            "amount": _money(self.amount),
            "balanceBefore": _money(self.balance_before),
            "balanceAfter": _money(self.balance_after),
            "locationName": self.location_name,
            "locationAddress": self.location_address,
            "notes": self.notes,
            "transactionId": self.transaction_id,
            "status": self.status,
            "redeemedAt": _iso(self.redeemed_at),
            "redeemedBy": {
                "id": self.redeemed_by.id,
                "name": self.redeemed_by.name,
                "email": self.redeemed_by.email,
            } if self.redeemed_by else None,
        }
        if include_purchase and self.purchase:
            data["purchasedGiftCard"] = self.purchase.to_dict()
        return data


class RedemptionOtps(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey('purchased_gift_cards.id'), nullable=False, index=True)
    requested_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    code_hash = db.Column(db.String(128), nullable=False)
    attempts = db.Column(db.Integer, default=0)
    sent_at = db.Column(db.DateTime, default=datetime.now)
    expires_at = db.Column(db.DateTime, nullable=False)
    verified_at = db.Column(db.DateTime)
    consumed_at = db.Column(db.DateTime)


class PasswordResetOtps(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    code_hash = db.Column(db.String(128), nullable=False)
    attempts = db.Column(db.Integer, default=0)
    sent_at = db.Column(db.DateTime, default=datetime.now)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime)


class SupportTickets(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    query_text = db.Column("query", db.Text, nullable=False)
    status = db.Column(db.String(20), default='OPEN')  # OPEN / IN_PROGRESS / CLOSE
    response = db.Column(db.Text)
    responded_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)
    merchant = db.relationship('Users', lazy=True)

    def to_dict(self):
        profile = self.merchant.merchant_profile if self.merchant else None
        return {
            "id": self.id,
            "merchantId": self.merchant_id,
            "title": self.title,
            "query": self.query_text,
            "status": self.status,
            "response": self.response,
            "adminResponse": self.response,
            "respondedAt": _iso(self.responded_at),
            "merchantName": self.merchant.name if self.merchant else None,
            "merchantEmail": self.merchant.email if self.merchant else None,
            "businessName": profile.business_name if profile else None,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class LandingPages(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    content_json = db.Column(db.Text, nullable=False)
    updated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def content(self):
        return json.loads(self.content_json)

    @content.setter
    def content(self, value):
        self.content_json = json.dumps(value, ensure_ascii=False)


class ContactMessages(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(255))
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "subject": self.subject,
            "message": self.message,
            "createdAt": _iso(self.created_at),
        }


class Notifications(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    recipient_type = db.Column(db.String(20), nullable=False)  # ADMIN / MERCHANT
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    resource_type = db.Column(db.String(50))
    resource_id = db.Column(db.String(50))
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime)
    actor_id = db.Column(db.Integer)
    actor_name = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "createdAt": _iso(self.created_at),
            "recipientId": self.recipient_id,
            "recipientType": self.recipient_type,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "isRead": self.is_read,
            "readAt": _iso(self.read_at),
            "actorId": self.actor_id,
            "actorName": self.actor_name,
        }


class NotificationPreferences(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    merchant_registered = db.Column(db.Boolean, default=True)
    profile_submitted_for_verification = db.Column(db.Boolean, default=True)
    purchase_made = db.Column(db.Boolean, default=True)
    redemption_made = db.Column(db.Boolean, default=True)
    profile_verified = db.Column(db.Boolean, default=True)
    profile_rejected = db.Column(db.Boolean, default=True)
    gift_card_purchased = db.Column(db.Boolean, default=True)
    gift_card_redeemed = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    # API 필드명(camelCase) -> 컬럼명
    FIELDS = {
        "merchantRegistered": "merchant_registered",
        "profileSubmittedForVerification": "profile_submitted_for_verification",
        "purchaseMade": "purchase_made",
        "redemptionMade": "redemption_made",
        "profileVerified": "profile_verified",
        "profileRejected": "profile_rejected",
        "giftCardPurchased": "gift_card_purchased",
        "giftCardRedeemed": "gift_card_redeemed",
    }

    def to_dict(self):
        data = {"id": self.id, "userId": self.user_id}
        for key, column in self.FIELDS.items():
            data[key] = getattr(self, column)
        data["createdAt"] = _iso(self.created_at)
        data["updatedAt"] = _iso(self.updated_at)
        return data


class ActivityLogs(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer)
    actor_type = db.Column(db.String(20), default='SYSTEM')
    action = db.Column(db.String(100), nullable=False)
    category = db.Column(db.String(20), nullable=False, index=True)
    description = db.Column(db.Text)
    resource_type = db.Column(db.String(50))
    resource_id = db.Column(db.String(50))
    _meta_json = db.Column("metadata", db.Text)
    severity = db.Column(db.String(20), default='INFO', index=True)
    merchant_id = db.Column(db.Integer, index=True)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.now, index=True)

    @property
    def meta(self):
        return json.loads(self._meta_json) if self._meta_json else None

    @meta.setter
    def meta(self, value):
        self._meta_json = json.dumps(value, default=str) if value else None

    def to_dict(self):
        return {
            "id": self.id,
            "createdAt": _iso(self.created_at),
            "actorId": self.actor_id,
            "actorType": self.actor_type,
            "action": self.action,
            "category": self.category,
            "description": self.description,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "metadata": self.meta,
            "severity": self.severity,
            "merchantId": self.merchant_id,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
        }
