import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

from apptest import AppTestCase
from models import db, PurchasedGiftCards, Redemptions, RedemptionOtps
from services.otp_service import latest_otp, normalize_otp, seconds_until_resend, generate_otp, OTP_ALPHABET
from services.qr_service import extract_purchase_id

OTP = "AB12CD"


class TestPurchase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.merchant = self.make_merchant()
        self.card = self.make_card(self.merchant)

    def test_purchase_issues_qr_code(self):
        data = self.buy(self.card)
        self.assertRegex(data["code"], r"^GC-[0-9A-F]{8}-\d+$")
        self.assertEqual(extract_purchase_id(data["code"]), str(data["id"]))
        self.assertEqual(data["currentBalance"], "500.00")
        self.assertEqual(data["status"], "ACTIVE")

        purchase = db.session.get(PurchasedGiftCards, data["id"])
        # 전화번호 암호화 저장
        self.assertNotIn("98765", purchase._customer_phone)
        self.assertEqual(purchase.customer_phone, "+91 98765 43210")

    def test_purchase_validation_and_availability(self):
        rv = self.client.post(f"/api/purchases/gift-cards/{self.card.id}", json={"customerName": "A"})
        self.assertEqual(rv.status_code, 400)
        self.assertIn("customerEmail", rv.get_json()["errors"])

        inactive = self.make_card(self.merchant, is_active=False)
        rv = self.client.post(f"/api/purchases/gift-cards/{inactive.id}", json={})
        self.assertEqual(rv.status_code, 404)

    def test_purchase_accepts_numeric_fields(self):
        data = self.buy(self.card, customerPhone=9876543210, transactionId=4455)
        purchase = db.session.get(PurchasedGiftCards, data["id"])
        self.assertEqual(purchase.customer_phone, "9876543210")
        self.assertEqual(purchase.transaction_id, "4455")

    def test_non_object_json_body(self):
        rv = self.client.post(f"/api/purchases/gift-cards/{self.card.id}", json=["customerName"])
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()["message"], "Validation failed")

    def test_lookup_and_customer_purchases(self):
        data = self.buy(self.card)
        rv = self.client.get(f"/api/purchases/qr/{data['code']}")
        body = rv.get_json()["data"]
        self.assertEqual(body["merchant"]["businessName"], "Masala House")
        self.assertEqual(body["redemptionCount"], 0)
        self.assertEqual(body["display"]["balance"], "₹500.00")

        self.assertEqual(self.client.get("/api/purchases/qr/GC-00000000-99").status_code, 404)

        rv = self.client.get("/api/purchases/customer/ASHA@example.com")
        self.assertEqual(len(rv.get_json()["data"]["purchases"]), 1)

    def test_lookup_marks_expired(self):
        data = self.buy(self.card)
        purchase = db.session.get(PurchasedGiftCards, data["id"])
        purchase.expires_at = datetime.now() - timedelta(minutes=1)
        db.session.commit()
        rv = self.client.get(f"/api/purchases/qr/{data['code']}")
        self.assertEqual(rv.get_json()["data"]["status"], "EXPIRED")

    def test_qr_image(self):
        data = self.buy(self.card)
        rv = self.client.get(f"/api/purchases/qr/{data['code']}/image")
        self.assertEqual(rv.mimetype, "image/png")
        self.assertTrue(rv.data.startswith(b"\x89PNG"))

    def test_merchant_orders(self):
        self.buy(self.card)
        self.buy(self.card, customerName="Vikram", customerEmail="vikram@example.com")
        rv = self.client.get("/api/merchants/orders?search=vikram", headers=self.headers(self.merchant))
        orders = rv.get_json()["data"]["orders"]
        self.assertEqual(len(orders), 1)
        self.assertEqual(orders[0]["customer"]["email"], "vikram@example.com")
        self.assertEqual(orders[0]["amount"], "500.00")
        self.assertEqual(orders[0]["statusBadge"]["label"], "Active")


class TestOtpRedemption(AppTestCase):
    def setUp(self):
        super().setUp()
        self.merchant = self.make_merchant()
        self.card = self.make_card(self.merchant, price="500.00")
        self.purchase = self.buy(self.card)
        self.auth = self.headers(self.merchant)

    def request_otp(self, headers=None):
        with patch("services.otp_service.generate_otp", return_value=OTP):
            return self.client.post("/api/purchases/otp/request-otp", headers=headers or self.auth,
                                    json={"purchaseId": self.purchase["id"]})

    def verify(self, otp):
        return self.client.post("/api/purchases/otp/verify-otp", headers=self.auth,
                                json={"purchaseId": self.purchase["id"], "otp": otp})

    def redeem(self, **overrides):
        payload = {"qrCode": self.purchase["code"], "amount": "200", "locationName": "Masala House",
                   "locationAddress": "12 MG Road", "notes": "Lunch"}
        payload.update(overrides)
        return self.client.post("/api/purchases/redeem", headers=self.auth, json=payload)

    def rewind_resend(self):
        record = latest_otp(self.purchase["id"])
        record.sent_at -= timedelta(seconds=61)
        db.session.commit()

    def test_otp_helpers(self):
        self.assertEqual(normalize_otp(" ab-12 cd "), "AB12CD")
        code = generate_otp(6)
        self.assertEqual(len(code), 6)
        self.assertTrue(all(ch in OTP_ALPHABET for ch in code))
        now = datetime.now()
        self.assertEqual(seconds_until_resend(now - timedelta(seconds=15), now), 45)
        self.assertEqual(seconds_until_resend(now - timedelta(seconds=90), now), 0)
        self.assertEqual(seconds_until_resend(None), 0)

    def test_request_otp(self):
        rv = self.request_otp()
        self.assertEqual(rv.status_code, 200)
        data = rv.get_json()["data"]
        self.assertEqual(data["maskedPhone"], "987-***-3210")
        self.assertEqual(data["resendAvailableIn"], 60)
        record = latest_otp(self.purchase["id"])
        self.assertNotEqual(record.code_hash, OTP)

    def test_resend_countdown(self):
        self.request_otp()
        rv = self.request_otp()
        self.assertEqual(rv.status_code, 429)
        self.assertGreater(rv.get_json()["retryAfter"], 0)

        self.rewind_resend()
        self.assertEqual(self.request_otp().status_code, 200)
        # 이전 인증번호는 무효화
        self.assertEqual(RedemptionOtps.query.filter_by(purchase_id=self.purchase["id"],
                                                        consumed_at=None).count(), 1)

    def test_other_merchant_cannot_request(self):
        other = self.make_merchant("other@shop.example")
        self.assertEqual(self.request_otp(self.headers(other)).status_code, 404)

    def test_verify_attempts_and_lock(self):
        self.request_otp()
        self.assertEqual(self.verify("AB1").get_json()["message"], "Please enter the complete 6-character OTP")

        rv = self.verify("ZZZZZZ")
        self.assertEqual(rv.get_json()["message"], "Invalid OTP. 4 attempt(s) remaining.")
        self.assertEqual(rv.get_json()["remainingAttempts"], 4)
        for _ in range(3):
            self.verify("ZZZZZZ")
        rv = self.verify("ZZZZZZ")
        self.assertEqual(rv.status_code, 429)

        # 잠긴 뒤에는 올바른 번호도 거부
        self.assertEqual(self.verify(OTP).status_code, 429)

    def test_verify_expired(self):
        self.request_otp()
        record = latest_otp(self.purchase["id"])
        record.expires_at = datetime.now() - timedelta(seconds=1)
        db.session.commit()
        self.assertIn("expired", self.verify(OTP).get_json()["message"])

    def test_redeem_requires_verified_otp(self):
        rv = self.redeem()
        self.assertEqual(rv.status_code, 403)
        self.assertEqual(rv.get_json()["message"], "OTP verification required before redemption")

    def test_redeem_after_verify(self):
        self.request_otp()
        self.assertEqual(self.verify("ab12cd").status_code, 200)
        rv = self.redeem()
        self.assertEqual(rv.status_code, 200, rv.get_json())
        data = rv.get_json()["data"]
        self.assertEqual(data["redeemedAmount"], 200.0)
        self.assertEqual(data["remainingBalance"], 300.0)
        self.assertTrue(data["transactionId"].startswith("RD-"))

        redemption = Redemptions.query.one()
        self.assertEqual(str(redemption.balance_before), "500.00")
        self.assertEqual(str(redemption.balance_after), "300.00")
        self.assertEqual(redemption.redeemed_by_id, self.merchant.id)

        # 인증번호는 1회용
        self.assertEqual(self.redeem(amount="10").status_code, 403)

    def test_redeem_with_otp_in_one_call(self):
        self.request_otp()
        rv = self.redeem(amount="500", otp=OTP)
        self.assertEqual(rv.status_code, 200)
        purchase = db.session.get(PurchasedGiftCards, self.purchase["id"])
        self.assertEqual(purchase.status, "USED")
        self.assertEqual(str(purchase.total_redeemed), "500.00")

        # 잔액 소진 후 인증번호 요청 불가
        self.rewind_resend()
        self.assertEqual(self.request_otp().status_code, 400)

    def test_redeem_balance_bounds(self):
        self.request_otp()
        self.verify(OTP)
        rv = self.redeem(amount="500.01")
        self.assertEqual(rv.get_json()["message"], "Amount cannot exceed current balance (₹500)")
        self.assertEqual(self.redeem(amount="0").get_json()["message"], "Please enter valid amount")
        self.assertEqual(self.redeem(locationName="").get_json()["message"], "Please enter location details")
        # 검증 실패는 인증 상태를 소모하지 않음
        self.assertEqual(self.redeem().status_code, 200)

    def test_redeem_rejects_sub_paisa_amount(self):
        self.request_otp()
        rv = self.redeem(amount="0.001", otp=OTP)
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()["message"], "Please enter valid amount")
        self.assertEqual(Redemptions.query.count(), 0)
        # 인증번호는 소모되지 않음
        self.assertEqual(self.redeem(amount="0.01", otp=OTP).status_code, 200)

    def test_wrong_otp_after_verify_is_rejected(self):
        self.request_otp()
        self.assertEqual(self.verify(OTP).status_code, 200)
        rv = self.verify("ZZZZZZ")
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()["remainingAttempts"], 4)
        self.assertEqual(self.verify(OTP).get_json()["message"], "OTP already verified")

        rv = self.redeem(otp="ZZZZZZ")
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(Redemptions.query.count(), 0)
        self.assertEqual(latest_otp(self.purchase["id"]).attempts, 2)

    def test_redeem_rejects_other_merchant_and_bad_qr(self):
        other = self.make_merchant("other@shop.example")
        rv = self.client.post("/api/purchases/redeem", headers=self.headers(other),
                              json={"qrCode": self.purchase["code"], "amount": "1"})
        self.assertEqual(rv.status_code, 403)
        self.assertEqual(self.redeem(qrCode="GC-DEADBEEF-999").status_code, 404)
        self.assertEqual(self.redeem(qrCode="").status_code, 400)

    def test_redeem_expired_card(self):
        purchase = db.session.get(PurchasedGiftCards, self.purchase["id"])
        purchase.expires_at = datetime.now() - timedelta(days=1)
        db.session.commit()
        rv = self.redeem()
        self.assertIn("expired", rv.get_json()["message"])

    def test_history(self):
        self.request_otp()
        self.redeem(amount="100", otp=OTP)
        rv = self.client.get(f"/api/purchases/redemptions/history/qr/{self.purchase['code']}", headers=self.auth)
        summary = rv.get_json()["data"]["purchase"]
        self.assertEqual(summary["redemptionCount"], 1)
        self.assertEqual(summary["recentRedemptions"][0]["locationName"], "Masala House")

        rv = self.client.get(f"/api/purchases/redemptions/history/purchase/{self.purchase['id']}",
                             headers=self.auth)
        self.assertEqual(rv.get_json()["data"]["purchase"]["currentBalance"], "400.00")

        rv = self.client.get("/api/purchases/redemptions?search=Masala", headers=self.auth)
        body = rv.get_json()
        self.assertEqual(body["pagination"]["total"], 1)
        self.assertEqual(body["data"][0]["purchasedGiftCard"]["qrCode"], self.purchase["code"])

        other = self.make_merchant("other@shop.example")
        rv = self.client.get(f"/api/purchases/redemptions/history/qr/{self.purchase['code']}",
                             headers=self.headers(other))
        self.assertEqual(rv.status_code, 404)


if __name__ == '__main__':
    unittest.main()
