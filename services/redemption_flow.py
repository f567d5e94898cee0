from datetime import datetime
from flask import current_app
from services.otp_service import normalize_otp
from services.validators import validate_redemption_input

SESSION_KEY = 'redemption_flow'

STEP_SCAN = 'SCAN'
STEP_OTP_SENT = 'OTP_SENT'
STEP_VERIFIED = 'VERIFIED'
STEP_REDEEMED = 'REDEEMED'


class RedemptionFlow:
    """
    직원용 사용 처리 단계 (세션 저장).
    SCAN -> OTP_SENT -> (VERIFIED) -> REDEEMED
    VERIFIED: 인증은 완료됐지만 차감이 실패한 상태. 재시도 시 인증번호 입력 생략
    인증번호 재발송은 마지막 발송 후 OTP_RESEND_SECONDS 경과 후에만 가능
    """

    def __init__(self, qr_code=None, purchase_id=None, current_balance=None, masked_phone=None,
                 location_name="", location_address="", otp_sent_at=None, step=STEP_SCAN,
                 last_transaction=None):
        self.qr_code = qr_code
        self.purchase_id = purchase_id
        self.current_balance = current_balance
        self.masked_phone = masked_phone
        self.location_name = location_name
        self.location_address = location_address
        self.otp_sent_at = otp_sent_at
        self.step = step
        self.last_transaction = last_transaction

    @classmethod
    def from_session(cls, session):
        data = session.get(SESSION_KEY)
        if not data:
            return None
        sent_at = data.get("otp_sent_at")
        return cls(
            qr_code=data.get("qr_code"),
            purchase_id=data.get("purchase_id"),
            current_balance=data.get("current_balance"),
            masked_phone=data.get("masked_phone"),
            location_name=data.get("location_name", ""),
            location_address=data.get("location_address", ""),
            otp_sent_at=datetime.fromisoformat(sent_at) if sent_at else None,
            step=data.get("step", STEP_SCAN),
            last_transaction=data.get("last_transaction"),
        )

    def save(self, session):
        session[SESSION_KEY] = {
            "qr_code": self.qr_code,
            "purchase_id": self.purchase_id,
            "current_balance": self.current_balance,
            "masked_phone": self.masked_phone,
            "location_name": self.location_name,
            "location_address": self.location_address,
            "otp_sent_at": self.otp_sent_at.isoformat() if self.otp_sent_at else None,
            "step": self.step,
            "last_transaction": self.last_transaction,
        }

    @staticmethod
    def clear(session):
        session.pop(SESSION_KEY, None)

    @classmethod
    def start(cls, purchase):
        """잔액 조회 결과로 시작. 사용 장소는 가맹점 주소로 미리 채움"""
        merchant = purchase.get("merchant") or {}
        return cls(
            qr_code=purchase["qrCode"],
            purchase_id=purchase["id"],
            current_balance=purchase["currentBalance"],
            location_name=merchant.get("city") or "",
            location_address=merchant.get("address") or "",
        )

    @property
    def otp_sent(self):
        return self.otp_sent_at is not None

    def seconds_until_resend(self, now=None):
        if not self.otp_sent_at:
            return 0
        now = now or datetime.now()
        wait = current_app.config['OTP_RESEND_SECONDS'] - (now - self.otp_sent_at).total_seconds()
        return max(int(wait + 0.999), 0)

    def can_resend(self, now=None):
        return self.otp_sent and self.seconds_until_resend(now) == 0

    def mark_otp_sent(self, masked_phone=None, now=None):
        self.otp_sent_at = now or datetime.now()
        self.masked_phone = masked_phone or self.masked_phone
        self.step = STEP_OTP_SENT

    def validate_submission(self, otp, amount, location_name, location_address):
        """서버 호출 전 입력 검증. 오류 메시지 또는 None"""
        if not self.otp_sent:
            return "Please request an OTP first"
        if self.step != STEP_VERIFIED and len(normalize_otp(otp)) != current_app.config['OTP_LENGTH']:
            return "Please enter complete OTP"
        return validate_redemption_input(amount, self.current_balance, location_name, location_address)

    def mark_verified(self):
        self.step = STEP_VERIFIED

    def complete(self, result_data):
        self.step = STEP_REDEEMED
        self.last_transaction = result_data
        self.current_balance = f"{result_data['remainingBalance']:.2f}"

    def to_dict(self, now=None):
        return {
            "step": self.step,
            "qrCode": self.qr_code,
            "purchaseId": self.purchase_id,
            "currentBalance": self.current_balance,
            "maskedPhone": self.masked_phone,
            "locationName": self.location_name,
            "locationAddress": self.location_address,
            "otpSent": self.otp_sent,
            "resendAvailableIn": self.seconds_until_resend(now),
            "canResend": self.can_resend(now),
            "lastTransaction": self.last_transaction,
        }
