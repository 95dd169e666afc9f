"""
Identity provider abstraction over Firebase Authentication.

The rest of the service only consumes ``verify(token) -> Principal`` plus the
provider-side profile store. Token verification itself is always delegated to
the Firebase Admin SDK.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import firebase_admin
from firebase_admin import auth, credentials, firestore

logger = logging.getLogger(__name__)


class TokenVerificationError(Exception):
    """The bearer credential is expired, revoked or otherwise invalid."""


@dataclass(frozen=True)
class Principal:
    uid: str
    email: Optional[str] = None


class IdentityProvider(Protocol):
    """Operations the API needs from the identity provider."""

    def verify(self, token: str) -> Principal:
        ...

    def get_profile(self, uid: str) -> Optional[dict]:
        ...

    def update_profile(self, uid: str, data: dict) -> None:
        ...


def initialize_firebase_app(
    service_account_json: Optional[str] = None,
    project_id: Optional[str] = None,
) -> firebase_admin.App:
    """Initialise the default Firebase app once per process and return it."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {}
    if service_account_json:
        service_account = json.loads(service_account_json)
        cred = credentials.Certificate(service_account)
        project_id = project_id or service_account.get("project_id")
        logger.info(
            "Initializing Firebase Admin with service account for project %s",
            project_id,
        )
    else:
        cred = credentials.ApplicationDefault()
        logger.info("Initializing Firebase Admin with application default credentials")
    if project_id:
        options["projectId"] = project_id
    return firebase_admin.initialize_app(cred, options or None)


class FirebaseIdentityProvider:
    """Verifies Firebase ID tokens and reads profiles from Firestore."""

    def __init__(self, app: firebase_admin.App, profile_collection: str = "users"):
        self.app = app
        self.profile_collection = profile_collection
        self._firestore = firestore.client(app)

    def verify(self, token: str) -> Principal:
        try:
            decoded = auth.verify_id_token(token, app=self.app)
        except (ValueError, auth.InvalidIdTokenError, auth.CertificateFetchError) as exc:
            # ExpiredIdTokenError and RevokedIdTokenError subclass InvalidIdTokenError.
            raise TokenVerificationError(str(exc)) from exc
        return Principal(uid=decoded["uid"], email=decoded.get("email"))

    def get_profile(self, uid: str) -> Optional[dict]:
        snapshot = self._firestore.collection(self.profile_collection).document(uid).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def update_profile(self, uid: str, data: dict) -> None:
        self._firestore.collection(self.profile_collection).document(uid).set(
            data, merge=True
        )


@dataclass
class InMemoryIdentityProvider:
    """Test double: tokens map straight to principals."""

    tokens: dict = field(default_factory=dict)
    profiles: dict = field(default_factory=dict)

    def register(
        self, token: str, uid: str, email: Optional[str] = None, profile: Optional[dict] = None
    ) -> Principal:
        principal = Principal(uid=uid, email=email)
        self.tokens[token] = principal
        if profile is not None:
            self.profiles[uid] = dict(profile)
        return principal

    def verify(self, token: str) -> Principal:
        principal = self.tokens.get(token)
        if principal is None:
            raise TokenVerificationError("Invalid token")
        return principal

    def get_profile(self, uid: str) -> Optional[dict]:
        profile = self.profiles.get(uid)
        return dict(profile) if profile is not None else None

    def update_profile(self, uid: str, data: dict) -> None:
        self.profiles.setdefault(uid, {}).update(data)
