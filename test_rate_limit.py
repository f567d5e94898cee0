import unittest

from apptest import AppTestCase, PASSWORD


class TestRateLimit(AppTestCase):
    ratelimit_enabled = True

    def test_login_blocked_after_five_attempts(self):
        self.make_merchant()
        for _ in range(5):
            rv = self.client.post("/api/auth/login", json={"email": "shop@example.com", "password": "Wrong1234"})
            self.assertEqual(rv.status_code, 401)

        # [보안] 올바른 비밀번호라도 차단
        rv = self.client.post("/api/auth/login", json={"email": "shop@example.com", "password": PASSWORD})
        self.assertEqual(rv.status_code, 429)
        body = rv.get_json()
        self.assertFalse(body["success"])

    def test_contact_form_limited(self):
        payload = {"name": "Spam", "email": "spam@example.com", "message": "Buy cheap followers now"}
        for _ in range(5):
            self.assertEqual(self.client.post("/api/users/contact-us", json=payload).status_code, 201)
        self.assertEqual(self.client.post("/api/users/contact-us", json=payload).status_code, 429)


if __name__ == '__main__':
    unittest.main()
