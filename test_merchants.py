import io
import os
import unittest
from unittest.mock import patch

from PIL import Image
from sqlalchemy.exc import SQLAlchemyError

from apptest import AppTestCase, valid_profile
from models import db, Users, MerchantProfiles, Notifications


def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), "orange").save(buffer, format="PNG")
    return buffer.getvalue()


class TestMerchantVerification(AppTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_admin()
        self.merchant = self.make_merchant(status='INCOMPLETE')

    def submit(self, **overrides):
        data = valid_profile(**overrides)
        data["logo"] = (io.BytesIO(png_bytes()), "logo.png")
        return self.client.post("/api/auth/merchant/complete-profile", headers=self.headers(self.merchant),
                                data=data, content_type="multipart/form-data")

    def verify(self, approved, notes=None, prefix="/api/auth/admin"):
        return self.client.post(f"{prefix}/merchants/{self.merchant.id}/verify", headers=self.headers(self.admin),
                                json={"approved": approved, "notes": notes})

    def status(self):
        return db.session.get(MerchantProfiles, self.merchant.merchant_profile.id).profile_status

    def test_complete_profile_moves_to_pending(self):
        rv = self.submit()
        self.assertEqual(rv.status_code, 200, rv.get_json())
        self.assertEqual(self.status(), "PENDING_VERIFICATION")

        profile = self.merchant.merchant_profile
        self.assertTrue(profile.logo.startswith("uploads/"))
        # 계좌번호 암호화 저장
        self.assertNotEqual(profile._account_number, "123456789012")
        self.assertEqual(profile.account_number, "123456789012")
        self.assertEqual(profile.to_dict()["accountNumber"], "********9012")

        self.assertEqual(Notifications.query.filter_by(type="PROFILE_SUBMITTED_FOR_VERIFICATION").count(), 1)
        rv = self.client.get("/api/auth/admin/merchants/pending", headers=self.headers(self.admin))
        self.assertEqual(len(rv.get_json()["data"]["merchants"]), 1)

    def test_complete_profile_validation(self):
        rv = self.submit(ifscCode="", swiftCode="")
        self.assertEqual(rv.status_code, 400)
        self.assertIn("bankCode", rv.get_json()["errors"])
        self.assertEqual(self.status(), "INCOMPLETE")

    def test_invalid_upload_rejected(self):
        data = valid_profile()
        data["logo"] = (io.BytesIO(b"not an image"), "logo.png")
        rv = self.client.post("/api/auth/merchant/complete-profile", headers=self.headers(self.merchant),
                              data=data, content_type="multipart/form-data")
        self.assertEqual(rv.status_code, 400)
        self.assertIn("Invalid image file", rv.get_json()["message"])

    def test_failed_upload_leaves_no_files(self):
        data = valid_profile()
        data["logo"] = (io.BytesIO(png_bytes()), "logo.png")
        data["identityDocument"] = (io.BytesIO(b"not an image"), "id.png")
        rv = self.client.post("/api/auth/merchant/complete-profile", headers=self.headers(self.merchant),
                              data=data, content_type="multipart/form-data")
        self.assertEqual(rv.status_code, 400)
        self.assertIn("identityDocument", rv.get_json()["message"])
        self.assertEqual(os.listdir(self.upload_dir), [])
        self.assertIsNone(db.session.get(MerchantProfiles, self.merchant.merchant_profile.id).logo)

    def test_commit_failure_removes_saved_files(self):
        with patch("sqlalchemy.orm.Session.commit", side_effect=SQLAlchemyError("disk full")):
            rv = self.submit()
        self.assertEqual(rv.status_code, 500)
        self.assertEqual(os.listdir(self.upload_dir), [])
        self.assertEqual(self.status(), "INCOMPLETE")

    def test_cannot_submit_twice(self):
        self.submit()
        self.assertEqual(self.submit().status_code, 409)

    def test_reject_requires_notes_then_resubmit_and_approve(self):
        self.submit()
        self.assertEqual(self.verify(False).status_code, 400)

        rv = self.verify(False, "Registration document is unreadable")
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(self.status(), "REJECTED")

        rv = self.client.get("/api/auth/merchant/rejection-details", headers=self.headers(self.merchant))
        self.assertEqual(rv.get_json()["data"]["rejectionReason"], "Registration document is unreadable")

        rv = self.client.post("/api/auth/merchant/resubmit-documents", headers=self.headers(self.merchant),
                              json={"description": "Updated documents"})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(self.status(), "PENDING_VERIFICATION")

        rv = self.verify(True, prefix="/api/admin")
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(self.status(), "VERIFIED")
        self.assertEqual(Notifications.query.filter_by(recipient_id=self.merchant.id,
                                                       type="PROFILE_VERIFIED").count(), 1)

        rv = self.client.get("/api/auth/merchant/verification-status", headers=self.headers(self.merchant))
        self.assertTrue(rv.get_json()["data"]["isVerified"])

    def test_verify_only_pending(self):
        self.assertEqual(self.verify(True).status_code, 409)

    def test_resubmit_only_when_rejected(self):
        rv = self.client.post("/api/auth/merchant/resubmit-documents", headers=self.headers(self.merchant),
                              json={})
        self.assertEqual(rv.status_code, 409)

    def test_rejection_details_absent_when_not_rejected(self):
        rv = self.client.get("/api/auth/merchant/rejection-details", headers=self.headers(self.merchant))
        self.assertEqual(rv.status_code, 404)


class TestMerchantManagement(AppTestCase):
    def setUp(self):
        super().setUp()
        self.admin = self.make_admin()

    def test_list_and_filter(self):
        self.make_merchant("a@shop.example", status='VERIFIED', business_name="Alpha Foods")
        self.make_merchant("b@shop.example", status='PENDING_VERIFICATION', business_name="Beta Bakes")
        headers = self.headers(self.admin)

        rv = self.client.get("/api/admin/merchants?status=VERIFIED", headers=headers)
        merchants = rv.get_json()["data"]["merchants"]
        self.assertEqual([m["email"] for m in merchants], ["a@shop.example"])
        self.assertEqual(merchants[0]["display"]["initials"], "AL")
        self.assertEqual(merchants[0]["display"]["location"], "Bengaluru, India")
        self.assertEqual(merchants[0]["display"]["status"]["label"], "Verified")

        rv = self.client.get("/api/admin/merchants?search=beta", headers=headers)
        self.assertEqual(rv.get_json()["data"]["pagination"]["total"], 1)

    def test_only_verified_merchants_editable(self):
        pending = self.make_merchant("p@shop.example", status='PENDING_VERIFICATION')
        rv = self.client.put(f"/api/admin/merchants/{pending.id}", headers=self.headers(self.admin),
                             json={"city": "Mumbai"})
        self.assertEqual(rv.status_code, 409)

        verified = self.make_merchant("v@shop.example")
        rv = self.client.put(f"/api/admin/merchants/{verified.id}", headers=self.headers(self.admin),
                             json={"city": "Mumbai", "businessRegistrationNumber": "REG-1"})
        self.assertEqual(rv.status_code, 200, rv.get_json())
        self.assertEqual(rv.get_json()["data"]["merchant"]["merchantProfile"]["city"], "Mumbai")

    def test_suspend_toggles_access(self):
        merchant = self.make_merchant()
        rv = self.client.post(f"/api/admin/merchants/{merchant.id}/suspend", headers=self.headers(self.admin))
        self.assertFalse(rv.get_json()["data"]["merchant"]["isActive"])
        self.assertEqual(self.client.get("/api/auth/me", headers=self.headers(merchant)).status_code, 403)

        self.client.post(f"/api/admin/merchants/{merchant.id}/suspend", headers=self.headers(self.admin))
        self.assertTrue(db.session.get(Users, merchant.id).is_active)

    def test_merchant_detail_includes_stats(self):
        merchant = self.make_merchant()
        card = self.make_card(merchant)
        self.buy(card)
        rv = self.client.get(f"/api/admin/merchants/{merchant.id}", headers=self.headers(self.admin))
        stats = rv.get_json()["data"]["merchant"]["stats"]
        self.assertEqual(stats["totalSales"], "500.00")
        self.assertEqual(stats["activeGiftCards"], 1)

        rv = self.client.get("/api/merchants/dashboard", headers=self.headers(merchant))
        self.assertEqual(rv.get_json()["data"]["redemptions"], 0)

        rv = self.client.get("/api/admin/analytics/dashboard", headers=self.headers(self.admin))
        self.assertEqual(rv.get_json()["data"]["totalPurchases"], 1)

    def test_update_own_profile(self):
        merchant = self.make_merchant(status='INCOMPLETE')
        rv = self.client.put("/api/merchants/update/profile", headers=self.headers(merchant),
                             json={"businessPhone": "0123"})
        self.assertIn("businessPhone", rv.get_json()["errors"])

        rv = self.client.put("/api/merchants/update/profile", headers=self.headers(merchant),
                             json={"businessPhone": "+919812345678", "name": "New Owner"})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()["data"]["user"]["name"], "New Owner")


if __name__ == '__main__':
    unittest.main()
