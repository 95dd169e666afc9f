import unittest
from unittest.mock import MagicMock, patch

from firebase_admin import auth

from companyhub.auth import extract_bearer_token, resolve_user
from companyhub.db import InMemoryDbClient
from companyhub.errors import AuthenticationError
from companyhub.identity import (
    FirebaseIdentityProvider,
    InMemoryIdentityProvider,
    Principal,
    TokenVerificationError,
)


class ExtractBearerTokenTests(unittest.TestCase):
    def test_returns_token(self):
        self.assertEqual(extract_bearer_token("Bearer abc.def"), "abc.def")

    def test_missing_header(self):
        for header in (None, ""):
            with self.assertRaises(AuthenticationError) as ctx:
                extract_bearer_token(header)
            self.assertEqual(ctx.exception.message, "Unauthorized: No token provided")
            self.assertEqual(ctx.exception.status_code, 401)

    def test_wrong_scheme(self):
        for header in ("Basic abc", "bearer abc", "Token"):
            with self.assertRaises(AuthenticationError) as ctx:
                extract_bearer_token(header)
            self.assertEqual(
                ctx.exception.message, "Unauthorized: Invalid token format"
            )

    def test_empty_token(self):
        with self.assertRaises(AuthenticationError) as ctx:
            extract_bearer_token("Bearer   ")
        self.assertEqual(ctx.exception.message, "Unauthorized: Invalid token format")


@patch("companyhub.identity.firestore.client")
class FirebaseIdentityProviderTests(unittest.TestCase):
    def test_verify_returns_principal(self, mock_client):
        provider = FirebaseIdentityProvider(MagicMock())
        with patch(
            "companyhub.identity.auth.verify_id_token",
            return_value={"uid": "alice-uid", "email": "alice@example.com"},
        ) as verify:
            principal = provider.verify("good-token")
        verify.assert_called_once_with("good-token", app=provider.app)
        self.assertEqual(principal, Principal(uid="alice-uid", email="alice@example.com"))

    def test_verify_wraps_invalid_token(self, mock_client):
        provider = FirebaseIdentityProvider(MagicMock())
        with patch(
            "companyhub.identity.auth.verify_id_token",
            side_effect=auth.InvalidIdTokenError("bad token"),
        ):
            with self.assertRaises(TokenVerificationError):
                provider.verify("bad-token")

    def test_verify_wraps_malformed_token(self, mock_client):
        provider = FirebaseIdentityProvider(MagicMock())
        with patch(
            "companyhub.identity.auth.verify_id_token",
            side_effect=ValueError("malformed"),
        ):
            with self.assertRaises(TokenVerificationError):
                provider.verify("not-a-jwt")

    def test_get_profile_reads_profile_collection(self, mock_client):
        firestore_client = mock_client.return_value
        doc = firestore_client.collection.return_value.document.return_value
        doc.get.return_value.exists = True
        doc.get.return_value.to_dict.return_value = {"displayName": "Alice"}

        provider = FirebaseIdentityProvider(MagicMock(), profile_collection="profiles")

        self.assertEqual(provider.get_profile("alice-uid"), {"displayName": "Alice"})
        firestore_client.collection.assert_called_with("profiles")
        firestore_client.collection.return_value.document.assert_called_with("alice-uid")

    def test_get_profile_missing(self, mock_client):
        doc = mock_client.return_value.collection.return_value.document.return_value
        doc.get.return_value.exists = False
        provider = FirebaseIdentityProvider(MagicMock())
        self.assertIsNone(provider.get_profile("nobody"))

    def test_update_profile_merges(self, mock_client):
        doc = mock_client.return_value.collection.return_value.document.return_value
        provider = FirebaseIdentityProvider(MagicMock())
        provider.update_profile("alice-uid", {"theme": "dark"})
        doc.set.assert_called_once_with({"theme": "dark"}, merge=True)


class ResolveUserTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.identity = InMemoryIdentityProvider()

    def test_creates_user_from_profile(self):
        self.identity.register(
            "t",
            "alice-uid",
            "alice@example.com",
            profile={"displayName": "Alice", "photoURL": "https://img.example/a.png"},
        )
        user = resolve_user(
            Principal("alice-uid", "alice@example.com"), self.db, self.identity
        )
        self.assertEqual(user.uid, "alice-uid")
        self.assertEqual(user.email, "alice@example.com")
        self.assertEqual(user.display_name, "Alice")
        self.assertEqual(user.photo_url, "https://img.example/a.png")

    def test_returns_existing_user(self):
        first = resolve_user(Principal("bob-uid", "bob@example.com"), self.db, self.identity)
        self.identity.register("t", "bob-uid", profile={"displayName": "Later"})
        second = resolve_user(Principal("bob-uid"), self.db, self.identity)
        self.assertEqual(first.id, second.id)
        self.assertIsNone(second.display_name)

    def test_missing_email_stored_as_empty(self):
        user = resolve_user(Principal("anon-uid"), self.db, self.identity)
        self.assertEqual(user.email, "")


if __name__ == "__main__":
    unittest.main()
