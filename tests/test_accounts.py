import unittest
from unittest import mock

import support  # noqa: F401

import auth_security
import config
from formatting import format_currency, format_date, format_points
from validation import (
    ValidationError,
    check_player,
    validate_email,
    validate_password,
    validate_team_name,
)


class TestSessionTokens(unittest.TestCase):
    def test_round_trip(self):
        token = auth_security.create_session_token("user-1")
        self.assertEqual(auth_security.parse_session_token(token), "user-1")

    def test_tampered_signature(self):
        token = auth_security.create_session_token("user-1")
        forged = "user-2" + token[len("user-1"):]
        self.assertIsNone(auth_security.parse_session_token(forged))

    def test_garbage(self):
        self.assertIsNone(auth_security.parse_session_token("not-a-token"))
        self.assertIsNone(auth_security.parse_session_token(""))

    def test_expired(self):
        token = auth_security.create_session_token("user-1")
        with mock.patch.object(config, "SESSION_TTL_DAYS", -1):
            self.assertIsNone(auth_security.parse_session_token(token))

    def test_other_secret(self):
        token = auth_security.create_session_token("user-1")
        with mock.patch.object(config, "SESSION_SECRET", "another-secret"):
            self.assertIsNone(auth_security.parse_session_token(token))

    def test_dotted_user_id(self):
        token = auth_security.create_session_token("team.one")
        self.assertEqual(auth_security.parse_session_token(token), "team.one")

    def test_max_age_override(self):
        token = auth_security.create_session_token("user-1", issued_at=0)
        self.assertIsNone(auth_security.parse_session_token(token))
        self.assertEqual(auth_security.parse_session_token(token, max_age_days=10 ** 6), "user-1")

    def test_empty_user_id(self):
        with self.assertRaises(ValueError):
            auth_security.create_session_token("")


class TestValidation(unittest.TestCase):
    def test_email(self):
        self.assertTrue(validate_email("joao@futsal.com.br"))
        self.assertFalse(validate_email("joao@futsal"))
        self.assertFalse(validate_email("jo ao@futsal.com"))
        self.assertFalse(validate_email(""))

    def test_password(self):
        self.assertTrue(validate_password("123456"))
        self.assertFalse(validate_password("12345"))
        self.assertFalse(validate_password(None))

    def test_team_name(self):
        self.assertTrue(validate_team_name("abc"))
        self.assertTrue(validate_team_name("x" * 30))
        self.assertFalse(validate_team_name("ab"))
        self.assertFalse(validate_team_name("x" * 31))

    def test_check_player_normalises(self):
        cleaned = check_player({"name": " Rafa ", "position": "ala", "team": "Azul", "price": "3.456"})
        self.assertEqual(cleaned["name"], "Rafa")
        self.assertEqual(cleaned["position"], "ALA")
        self.assertEqual(cleaned["price"], 3.46)
        self.assertIsNone(cleaned["photo_url"])
        self.assertNotIn("active", cleaned)

    def test_check_player_rejects(self):
        with self.assertRaises(ValidationError):
            check_player({"name": "Rafa", "position": "ZAG", "team": "Azul", "price": 3})
        with self.assertRaises(ValidationError):
            check_player({"name": "Rafa", "position": "ALA", "team": "Azul", "price": "caro"})
        with self.assertRaises(ValidationError):
            check_player({"position": "ALA", "team": "Azul", "price": 3})


class TestFormatting(unittest.TestCase):
    def test_currency(self):
        self.assertEqual(format_currency(10.5), "C$ 10,50")
        self.assertEqual(format_currency(None), "C$ 0,00")

    def test_points(self):
        self.assertEqual(format_points(20.1), "20.10")
        self.assertEqual(format_points(None), "0.00")

    def test_date(self):
        self.assertEqual(format_date("2024-03-09T18:30:00Z"), "09/03/2024")
        self.assertEqual(format_date(None), "")


if __name__ == '__main__':
    unittest.main()
