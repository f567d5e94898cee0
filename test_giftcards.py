import unittest
from datetime import datetime, timedelta

from apptest import AppTestCase
from models import db, GiftCards, Notifications
from services.giftcard_service import parse_expiry


def future(days=60):
    return (datetime.now() + timedelta(days=days)).strftime("%Y-%m-%d")


class TestGiftCards(AppTestCase):
    def setUp(self):
        super().setUp()
        self.merchant = self.make_merchant()

    def create(self, user=None, **overrides):
        payload = {"title": "Weekend Brunch", "price": "1500", "expiryDate": future(), "description": "For two"}
        payload.update(overrides)
        return self.client.post("/api/gift-cards", headers=self.headers(user or self.merchant), json=payload)

    def test_create_and_get(self):
        rv = self.create()
        self.assertEqual(rv.status_code, 201, rv.get_json())
        card = rv.get_json()["data"]
        self.assertEqual(card["price"], "1500.00")
        self.assertEqual(card["status"], "ACTIVE")
        self.assertTrue(card["expiryDate"].endswith("23:59:59"))

        rv = self.client.get(f"/api/gift-cards/{card['id']}")
        self.assertEqual(rv.get_json()["data"]["title"], "Weekend Brunch")

    def test_validation(self):
        self.assertEqual(self.create(title=" ").get_json()["message"], "Title is required")
        self.assertEqual(self.create(price="0").get_json()["message"], "Price must be greater than 0")
        self.assertEqual(self.create(price="0.001").get_json()["message"], "Price can have at most 2 decimal places")
        self.assertEqual(self.create(price="99.999").status_code, 400)
        past = (datetime.now() - timedelta(days=1)).strftime("%Y-%m-%d")
        self.assertEqual(self.create(expiryDate=past).get_json()["message"], "Expiry date must be in the future")
        self.assertEqual(self.create(expiryDate="soon").status_code, 400)

    def test_unverified_merchant_cannot_create(self):
        pending = self.make_merchant("pending@shop.example", status='PENDING_VERIFICATION')
        self.assertEqual(self.create(user=pending).status_code, 403)

    def test_card_limit(self):
        self.app.config['GIFT_CARD_LIMIT'] = 2
        self.assertEqual(self.create().status_code, 201)
        self.assertEqual(self.create().status_code, 201)
        self.assertEqual(self.create().status_code, 409)

    def test_list_with_totals(self):
        self.create(title="Alpha", price="100")
        self.create(title="Beta", price="300", expiryDate=future(10))
        rv = self.client.get("/api/gift-cards?sortBy=price&sortOrder=asc", headers=self.headers(self.merchant))
        data = rv.get_json()["data"]
        self.assertEqual([c["title"] for c in data["giftCards"]], ["Alpha", "Beta"])
        self.assertEqual(data["totalGiftCards"], 2)
        self.assertEqual(data["totalValue"], "400.00")
        self.assertEqual(data["expiringSoon"], 1)
        self.assertEqual(data["remaining"], 8)

        rv = self.client.get("/api/gift-cards?search=bet", headers=self.headers(self.merchant))
        self.assertEqual(rv.get_json()["data"]["pagination"]["total"], 1)

    def test_update_and_ownership(self):
        card_id = self.create().get_json()["data"]["id"]
        rv = self.client.put(f"/api/gift-cards/{card_id}", headers=self.headers(self.merchant),
                             json={"price": "2000", "isActive": False})
        self.assertEqual(rv.get_json()["data"]["price"], "2000.00")
        self.assertEqual(rv.get_json()["data"]["status"], "INACTIVE")

        # 비활성 카드는 공개 조회 불가
        self.assertEqual(self.client.get(f"/api/gift-cards/{card_id}").status_code, 404)

        other = self.make_merchant("other@shop.example")
        rv = self.client.put(f"/api/gift-cards/{card_id}", headers=self.headers(other), json={"price": "1"})
        self.assertEqual(rv.status_code, 404)

    def test_delete_deactivates_sold_cards(self):
        sold = self.make_card(self.merchant)
        self.buy(sold)
        unsold = self.make_card(self.merchant, title="Unsold")

        rv = self.client.delete(f"/api/gift-cards/{sold.id}", headers=self.headers(self.merchant))
        self.assertIn("deactivated", rv.get_json()["message"])
        self.assertFalse(db.session.get(GiftCards, sold.id).is_active)

        self.client.delete(f"/api/gift-cards/{unsold.id}", headers=self.headers(self.merchant))
        self.assertIsNone(db.session.get(GiftCards, unsold.id))

    def test_public_catalogue(self):
        self.make_card(self.merchant, title="Visible")
        self.make_card(self.merchant, title="Hidden", is_active=False)
        pending = self.make_merchant("pending@shop.example", status='PENDING_VERIFICATION')
        self.make_card(pending, title="Unverified")

        rv = self.client.get("/api/gift-cards/public/active")
        self.assertEqual([c["title"] for c in rv.get_json()["data"]["giftCards"]], ["Visible"])

        rv = self.client.get(f"/api/gift-cards/merchant/{pending.id}")
        self.assertEqual(rv.get_json()["data"]["giftCards"], [])

    def test_settings(self):
        headers = self.headers(self.merchant)
        rv = self.client.get("/api/gift-cards/settings", headers=headers)
        self.assertEqual(rv.get_json()["data"]["primaryColor"], "#F54927")
        self.assertEqual(rv.get_json()["data"]["preview"], {
            "background": "linear-gradient(to top right, #F54927, #46368A)", "textColor": "white"})

        rv = self.client.post("/api/gift-cards/card/settings", headers=headers,
                              json={"primaryColor": "112233", "fontFamily": "Lato", "gradientDirection": "TOP_BOTTOM"})
        self.assertEqual(rv.status_code, 201)
        self.assertEqual(rv.get_json()["data"]["primaryColor"], "#112233")

        rv = self.client.put("/api/gift-cards/card/settings", headers=headers, json={"fontFamily": "Comic Sans"})
        self.assertEqual(rv.status_code, 400)
        rv = self.client.put("/api/gift-cards/card/settings", headers=headers, json={"secondaryColor": "#ABCDEF"})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()["data"]["fontFamily"], "Lato")

    def test_notify_merchant(self):
        rv = self.client.post("/api/users/notify-merchant", json={
            "merchantId": self.merchant.id, "name": "Kiran", "email": "kiran@example.com"})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(Notifications.query.filter_by(recipient_id=self.merchant.id).count(), 1)
        rv = self.client.post("/api/users/notify-merchant", json={"merchantId": 999})
        self.assertEqual(rv.status_code, 404)

    def test_parse_expiry(self):
        self.assertEqual(parse_expiry("2030-06-01"), datetime(2030, 6, 1, 23, 59, 59))
        self.assertEqual(parse_expiry("2030-06-01T10:30:00"), datetime(2030, 6, 1, 10, 30))
        self.assertIsNone(parse_expiry("tomorrow"))
        self.assertIsNone(parse_expiry(None))


if __name__ == '__main__':
    unittest.main()
