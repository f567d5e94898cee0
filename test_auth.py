import unittest
from unittest.mock import patch

from apptest import AppTestCase, PASSWORD
from config import check_secret
from models import db, Users, ActivityLogs, Notifications


class TestAuth(AppTestCase):
    def register(self, **overrides):
        payload = {"email": "new@shop.example", "password": PASSWORD, "name": "Ravi",
                   "businessName": "Chai Point", "city": "Pune"}
        payload.update(overrides)
        return self.client.post("/api/auth/merchant/register", json=payload)

    def test_register_creates_incomplete_merchant(self):
        self.make_admin()
        rv = self.register()
        self.assertEqual(rv.status_code, 201)
        body = rv.get_json()
        self.assertEqual(body["data"]["user"]["merchantProfile"]["profileStatus"], "INCOMPLETE")
        self.assertIn("accessToken", body["data"]["tokens"])
        self.assertEqual(Notifications.query.filter_by(type="MERCHANT_REGISTERED").count(), 1)

    def test_register_rejects_weak_password_and_duplicates(self):
        rv = self.register(password="weak")
        self.assertEqual(rv.status_code, 400)
        self.assertIn("Password requirements not met", rv.get_json()["message"])
        self.assertEqual(rv.get_json()["passwordStrength"], "Weak")

        self.assertEqual(self.register().status_code, 201)
        self.assertEqual(self.register().status_code, 409)

    def test_login_and_me(self):
        merchant = self.make_merchant()
        rv = self.client.post("/api/auth/login", json={"email": "SHOP@example.com", "password": PASSWORD})
        self.assertEqual(rv.status_code, 200)
        token = rv.get_json()["data"]["tokens"]["accessToken"]

        rv = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(rv.get_json()["data"]["user"]["id"], merchant.id)

    def test_login_failure_is_logged(self):
        self.make_merchant()
        rv = self.client.post("/api/auth/login", json={"email": "shop@example.com", "password": "Wrong1234"})
        self.assertEqual(rv.status_code, 401)
        log = ActivityLogs.query.filter_by(action="LOGIN_FAILED").first()
        self.assertEqual(log.severity, "WARNING")

    def test_suspended_user_cannot_login(self):
        merchant = self.make_merchant()
        merchant.is_active = False
        db.session.commit()
        rv = self.client.post("/api/auth/login", json={"email": "shop@example.com", "password": PASSWORD})
        self.assertEqual(rv.status_code, 403)

    def test_token_required(self):
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)
        rv = self.client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
        self.assertEqual(rv.status_code, 401)
        merchant = self.make_merchant()
        rv = self.client.get("/api/admin/merchants", headers=self.headers(merchant))
        self.assertEqual(rv.status_code, 403)

    def test_refresh_token(self):
        merchant = self.make_merchant()
        login = self.client.post("/api/auth/login", json={"email": merchant.email, "password": PASSWORD})
        refresh_token = login.get_json()["data"]["tokens"]["refreshToken"]
        rv = self.client.post("/api/auth/refresh", json={"refreshToken": refresh_token})
        self.assertEqual(rv.status_code, 200)
        self.assertIn("accessToken", rv.get_json()["data"]["tokens"])

        # access token 으로는 갱신 불가
        access = login.get_json()["data"]["tokens"]["accessToken"]
        self.assertEqual(self.client.post("/api/auth/refresh", json={"refreshToken": access}).status_code, 401)

    def test_change_password(self):
        merchant = self.make_merchant()
        headers = self.headers(merchant)
        rv = self.client.post("/api/auth/change-password", headers=headers, json={
            "currentPassword": PASSWORD, "newPassword": PASSWORD, "confirmPassword": PASSWORD})
        self.assertEqual(rv.get_json()["message"], "New password must be different from current password")

        rv = self.client.post("/api/auth/change-password", headers=headers, json={
            "currentPassword": PASSWORD, "newPassword": "Changed456", "confirmPassword": "Changed456"})
        self.assertEqual(rv.status_code, 200)
        self.assertTrue(check_secret("Changed456", db.session.get(Users, merchant.id).password_hash))

    def test_password_reset_flow(self):
        merchant = self.make_merchant()
        with patch("services.auth_service.secrets.randbelow", return_value=42):
            rv = self.client.post("/api/auth/get-otp", json={"email": merchant.email})
        self.assertEqual(rv.status_code, 200)

        rv = self.client.post("/api/auth/verify-otp", json={"email": merchant.email, "otp": "000041"})
        self.assertEqual(rv.status_code, 400)

        rv = self.client.post("/api/auth/verify-otp", json={"email": merchant.email, "otp": "000042"})
        reset_token = rv.get_json()["data"]["resetToken"]

        rv = self.client.post("/api/auth/reset-password", json={
            "resetToken": reset_token, "newPassword": "Brandnew9", "confirmPassword": "Brandnew9"})
        self.assertEqual(rv.status_code, 200)
        rv = self.client.post("/api/auth/login", json={"email": merchant.email, "password": "Brandnew9"})
        self.assertEqual(rv.status_code, 200)

        # 재사용 불가
        rv = self.client.post("/api/auth/reset-password", json={
            "resetToken": reset_token, "newPassword": "Another99", "confirmPassword": "Another99"})
        self.assertEqual(rv.status_code, 400)

    def test_password_reset_does_not_reveal_unknown_email(self):
        rv = self.client.post("/api/auth/get-otp", json={"email": "nobody@example.com"})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()["message"], "If the email is registered, an OTP has been sent")

    def test_admin_creates_verified_merchant_and_sets_password(self):
        admin = self.make_admin()
        rv = self.client.post("/api/auth/admin/create-merchant", headers=self.headers(admin), json={
            "email": "direct@shop.example", "password": PASSWORD, "name": "Direct", "businessName": "Direct Foods"})
        self.assertEqual(rv.status_code, 201)
        merchant = rv.get_json()["data"]["merchant"]
        self.assertTrue(merchant["isVerified"])

        rv = self.client.post("/api/auth/admin-password", headers=self.headers(admin), json={
            "merchantId": merchant["id"], "newPassword": "Reset1234", "confirmPassword": "Reset1234"})
        self.assertEqual(rv.status_code, 200)
        self.assertTrue(db.session.get(Users, merchant["id"]).is_first_time)


if __name__ == '__main__':
    unittest.main()
