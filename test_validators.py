import unittest
from decimal import Decimal

from apptest import valid_profile
from services.validators import (
    validate_business_details, validate_bank_details, validate_profile, validate_description,
    password_errors, password_strength, password_strength_label, validate_new_password,
    validate_purchase_form, parse_amount, validate_redemption_input, is_valid_hex_color,
    is_whole_paise, clean_text,
)


class TestProfileValidation(unittest.TestCase):
    def test_valid_profile_has_no_errors(self):
        self.assertEqual(validate_profile(valid_profile()), {})

    def test_required_business_fields(self):
        errors = validate_business_details({})
        for field in ("businessName", "businessRegistrationNumber", "address", "city", "country",
                      "businessEmail"):
            self.assertIn(field, errors)
        self.assertNotIn("taxId", errors)

    def test_phone_and_website_format(self):
        errors = validate_business_details(valid_profile(businessPhone="012345", website="www.masala.example"))
        self.assertIn("businessPhone", errors)
        self.assertIn("website", errors)

    def test_length_limits(self):
        errors = validate_business_details(valid_profile(zipCode="1" * 21, city="c" * 101))
        self.assertEqual(errors["zipCode"], "Zip code must be at most 20 characters")
        self.assertIn("city", errors)

    def test_bank_code_required_when_bank_details_given(self):
        errors = validate_bank_details({"bankName": "State Bank"})
        self.assertIn("bankCode", errors)
        self.assertEqual(validate_bank_details({}), {})

    def test_swift_accepted_instead_of_ifsc(self):
        data = valid_profile(ifscCode="", swiftCode="SBININBB123")
        self.assertEqual(validate_bank_details(data), {})

    def test_invalid_ifsc_and_swift(self):
        errors = validate_bank_details({"ifscCode": "SBIN1001234", "swiftCode": "SBIN"})
        self.assertIn("ifscCode", errors)
        self.assertIn("swiftCode", errors)

    def test_description_limit(self):
        self.assertIn("description", validate_description({"description": "x" * 2001}))
        self.assertEqual(validate_description({"description": "x" * 2000}), {})


class TestPasswordRules(unittest.TestCase):
    def test_requirements(self):
        self.assertEqual(password_errors("Secret123"), [])
        self.assertEqual(len(password_errors("")), 4)
        self.assertIn("Contains at least one uppercase letter", password_errors("secret123"))

    def test_strength(self):
        self.assertEqual(password_strength("abc"), 1)
        self.assertEqual(password_strength_label(password_strength("abc")), "Weak")
        self.assertEqual(password_strength_label(password_strength("abcdefgh1")), "Good")
        self.assertEqual(password_strength_label(password_strength("Abcdefgh1")), "Strong")
        self.assertEqual(password_strength_label(2), "Fair")

    def test_new_password(self):
        self.assertIsNone(validate_new_password("Newpass123", "Newpass123", "Oldpass123"))
        self.assertEqual(validate_new_password("Newpass123", "Newpass124"), "Passwords don't match")
        self.assertEqual(validate_new_password("Same1234A", "Same1234A", "Same1234A"),
                         "New password must be different from current password")


class TestPurchaseAndRedemptionInput(unittest.TestCase):
    def test_purchase_form(self):
        errors = validate_purchase_form({"customerName": "A", "customerEmail": "bad", "customerPhone": "12345"})
        self.assertEqual(set(errors), {"customerName", "customerEmail", "customerPhone", "paymentMethod",
                                       "transactionId"})

    def test_clean_text_accepts_non_strings(self):
        self.assertEqual(clean_text({"customerPhone": 9876543210}, "customerPhone"), "9876543210")
        self.assertEqual(clean_text({"name": "  Asha "}, "name"), "Asha")
        self.assertEqual(clean_text({}, "name"), "")

    def test_parse_amount(self):
        self.assertEqual(parse_amount("12.50"), Decimal("12.50"))
        self.assertEqual(parse_amount(7), Decimal("7"))
        self.assertIsNone(parse_amount("abc"))
        self.assertIsNone(parse_amount("NaN"))
        self.assertIsNone(parse_amount(None))

    def test_amount_must_be_positive(self):
        for amount in ("", "0", "-5", "abc", None):
            self.assertEqual(validate_redemption_input(amount, "100.00", "Store", "Road"),
                             "Please enter valid amount")

    def test_amount_limited_to_two_decimals(self):
        for amount in ("0.001", "10.005", "1e-3"):
            self.assertEqual(validate_redemption_input(amount, "100.00", "Store", "Road"),
                             "Please enter valid amount")
        self.assertIsNone(validate_redemption_input("10.50", "100.00", "Store", "Road"))
        self.assertIsNone(validate_redemption_input("10.500", "100.00", "Store", "Road"))
        self.assertTrue(is_whole_paise(Decimal("99")))
        self.assertFalse(is_whole_paise(Decimal("0.999")))

    def test_amount_cannot_exceed_balance(self):
        self.assertEqual(validate_redemption_input("150", "100.00", "Store", "Road"),
                         "Amount cannot exceed current balance (₹100)")
        self.assertEqual(validate_redemption_input("12.51", "12.50", "Store", "Road"),
                         "Amount cannot exceed current balance (₹12.5)")

    def test_full_balance_allowed(self):
        self.assertIsNone(validate_redemption_input("100", "100.00", "Store", "Road"))

    def test_location_required(self):
        self.assertEqual(validate_redemption_input("10", "100", " ", "Road"), "Please enter location details")
        self.assertEqual(validate_redemption_input("10", "100", "Store", ""), "Please enter location details")

    def test_hex_color(self):
        self.assertTrue(is_valid_hex_color("#F54927"))
        self.assertFalse(is_valid_hex_color("F54927"))
        self.assertFalse(is_valid_hex_color("#F5492"))


if __name__ == '__main__':
    unittest.main()
