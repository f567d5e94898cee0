import shutil
import tempfile
import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from cryptography.fernet import Fernet

from app import create_app
from config import hash_secret
from models import db, Users, MerchantProfiles, GiftCards
from services.auth_service import issue_tokens

PASSWORD = "Secret123"


class AppTestCase(unittest.TestCase):
    """앱 + 인메모리 DB 공통 설정"""

    ratelimit_enabled = False

    def setUp(self):
        self.upload_dir = tempfile.mkdtemp()
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SECRET_KEY": "test-secret",
            "FERNET_KEY": Fernet.generate_key().decode(),
            "RATELIMIT_ENABLED": self.ratelimit_enabled,
            "RATELIMIT_STORAGE_URI": "memory://",
            "UPLOAD_FOLDER": self.upload_dir,
            "BCRYPT_LOG_ROUNDS": 4,
        })
        self.app_context = self.app.app_context()
        self.app_context.push()
        self.client = self.app.test_client()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()
        shutil.rmtree(self.upload_dir, ignore_errors=True)

    # --- fixtures ---

    def make_admin(self, email="admin@example.com"):
        admin = Users(email=email, name="Admin", role='ADMIN', password_hash=hash_secret(PASSWORD))
        db.session.add(admin)
        db.session.commit()
        return admin

    def make_merchant(self, email="shop@example.com", status='VERIFIED', business_name="Masala House"):
        user = Users(email=email, name="Shop Owner", role='MERCHANT', password_hash=hash_secret(PASSWORD))
        db.session.add(user)
        db.session.flush()
        db.session.add(MerchantProfiles(
            user_id=user.id,
            business_name=business_name,
            address="12 MG Road",
            city="Bengaluru",
            country="India",
            business_email=email,
            profile_status=status,
        ))
        db.session.commit()
        return user

    def make_card(self, merchant, title="Dinner for two", price="500.00", days=30, is_active=True):
        card = GiftCards(merchant_id=merchant.id, title=title, price=Decimal(price),
                         expiry_date=datetime.now() + timedelta(days=days), is_active=is_active)
        db.session.add(card)
        db.session.commit()
        return card

    def headers(self, user):
        return {"Authorization": f"Bearer {issue_tokens(user)['accessToken']}"}

    def buy(self, card, **overrides):
        payload = {
            "customerName": "Asha Rao",
            "customerEmail": "asha@example.com",
            "customerPhone": "+91 98765 43210",
            "paymentMethod": "UPI",
            "transactionId": "TXN-1001",
        }
        payload.update(overrides)
        rv = self.client.post(f"/api/purchases/gift-cards/{card.id}", json=payload)
        self.assertEqual(rv.status_code, 201, rv.get_json())
        return rv.get_json()["data"]


def valid_profile(**overrides):
    data = {
        "businessName": "Masala House",
        "businessRegistrationNumber": "REG-42",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "country": "India",
        "businessEmail": "contact@masala.example",
        "businessPhone": "+919876543210",
        "website": "https://masala.example",
        "bankName": "State Bank",
        "accountNumber": "123456789012",
        "accountHolderName": "Masala House LLP",
        "ifscCode": "SBIN0001234",
        "description": "North Indian restaurant",
    }
    data.update(overrides)
    return data
