"""
Firestore implementation of the DbClient interface.

One flat document per entity, keyed by a generated id, with the parent id
stored as a plain field. Local users are keyed by their Firebase uid so that
two concurrent first requests cannot create two records.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Type, TypeVar

from dacite import Config, from_dict
from firebase_admin import firestore
from google.api_core import exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from companyhub.db import (
    COMPANY_FIELDS,
    JOB_OFFER_FIELDS,
    SERVICE_FIELDS,
    USER_FIELDS,
    CompanyRecord,
    JobOfferRecord,
    ServiceImageRecord,
    ServiceRecord,
    UserRecord,
    pick_fields,
    utcnow,
)
from companyhub.errors import CompanyAlreadyExistsError
from companyhub.firebase_constants import (
    COMPANIES_COLLECTION,
    JOB_OFFERS_COLLECTION,
    SERVICE_IMAGES_COLLECTION,
    SERVICES_COLLECTION,
    USERS_COLLECTION,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")

_SPECIAL_KEYS = {"photo_url": "photoURL"}
_DACITE_CONFIG = Config(check_types=False)
# Firestore rejects write batches with more operations than this.
MAX_BATCH_WRITES = 500


def snake_to_camel(name: str) -> str:
    if name in _SPECIAL_KEYS:
        return _SPECIAL_KEYS[name]
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def convert_keys(data: dict[str, Any], direction: str) -> dict[str, Any]:
    """Convert top-level dict keys between snake_case and camelCase."""
    if direction == "snake_to_camel":
        return {snake_to_camel(key): value for key, value in data.items()}
    reverse = {
        snake_to_camel(name): name
        for name in (
            *USER_FIELDS,
            *COMPANY_FIELDS,
            *SERVICE_FIELDS,
            *JOB_OFFER_FIELDS,
            "uid",
            "url",
            "storage_path",
            "owner_id",
            "company_id",
            "service_id",
            "created_at",
            "updated_at",
        )
    }
    return {reverse.get(key, key): value for key, value in data.items()}


class FirestoreDbClient:
    """Document-store backend using the Firebase Admin Firestore client."""

    def __init__(self, client=None, app=None):
        self.client = client if client is not None else firestore.client(app)

    def parse_id(self, raw: str) -> str:
        value = str(raw).strip()
        if not value or "/" in value:
            raise ValueError(f"invalid document id: {raw!r}")
        return value

    def _collection(self, name: str):
        return self.client.collection(name)

    def _to_record(self, record_type: Type[RecordT], snapshot) -> RecordT:
        data = convert_keys(snapshot.to_dict() or {}, "camel_to_snake")
        data["id"] = snapshot.id
        return from_dict(record_type, data, config=_DACITE_CONFIG)

    def _get(self, collection: str, doc_id, record_type: Type[RecordT]) -> Optional[RecordT]:
        snapshot = self._collection(collection).document(str(doc_id)).get()
        if not snapshot.exists:
            return None
        return self._to_record(record_type, snapshot)

    def _list(
        self, collection: str, field: str, value, record_type: Type[RecordT]
    ) -> list[RecordT]:
        query = self._collection(collection).where(filter=FieldFilter(field, "==", value))
        return [self._to_record(record_type, snap) for snap in query.stream()]

    def _add(self, collection: str, payload: dict, record_type: Type[RecordT]) -> RecordT:
        doc_ref = self._collection(collection).document()
        doc_ref.set(convert_keys(payload, "snake_to_camel"))
        return from_dict(record_type, {**payload, "id": doc_ref.id}, config=_DACITE_CONFIG)

    def _update(
        self,
        collection: str,
        doc_id,
        patch: dict,
        allowed: tuple[str, ...],
        record_type: Type[RecordT],
    ) -> Optional[RecordT]:
        doc_ref = self._collection(collection).document(str(doc_id))
        snapshot = doc_ref.get()
        if not snapshot.exists:
            return None
        changes = {**pick_fields(patch, allowed), "updated_at": utcnow()}
        doc_ref.update(convert_keys(changes, "snake_to_camel"))
        current = convert_keys(snapshot.to_dict() or {}, "camel_to_snake")
        return from_dict(
            record_type, {**current, **changes, "id": doc_ref.id}, config=_DACITE_CONFIG
        )

    def _delete(self, collection: str, doc_id) -> None:
        self._collection(collection).document(str(doc_id)).delete()

    # Users
    def get_user(self, user_id) -> Optional[UserRecord]:
        return self._get(USERS_COLLECTION, user_id, UserRecord)

    def get_user_by_uid(self, uid: str) -> Optional[UserRecord]:
        return self._get(USERS_COLLECTION, uid, UserRecord)

    def create_user(
        self,
        uid: str,
        email: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> UserRecord:
        now = utcnow()
        payload = {
            "uid": uid,
            "email": email,
            "display_name": display_name,
            "photo_url": photo_url,
            "created_at": now,
            "updated_at": now,
        }
        doc_ref = self._collection(USERS_COLLECTION).document(uid)
        try:
            doc_ref.create(convert_keys(payload, "snake_to_camel"))
        except exceptions.AlreadyExists:
            logger.info("User %s already created concurrently, re-reading", uid)
            existing = self.get_user_by_uid(uid)
            if existing is None:
                raise
            return existing
        return UserRecord(id=uid, **payload)

    def update_user(self, user_id, patch: dict) -> Optional[UserRecord]:
        return self._update(USERS_COLLECTION, user_id, patch, USER_FIELDS, UserRecord)

    # Companies
    def get_company(self, company_id) -> Optional[CompanyRecord]:
        return self._get(COMPANIES_COLLECTION, company_id, CompanyRecord)

    def list_user_companies(self, owner_id) -> list[CompanyRecord]:
        return self._list(COMPANIES_COLLECTION, "ownerId", owner_id, CompanyRecord)

    def create_company(self, owner_id, data: dict) -> CompanyRecord:
        now = utcnow()
        payload = {
            **pick_fields(data, COMPANY_FIELDS),
            "owner_id": owner_id,
            "created_at": now,
            "updated_at": now,
        }
        companies = self._collection(COMPANIES_COLLECTION)
        doc_ref = companies.document()

        @firestore.transactional
        def _create_company_transaction(transaction, new_ref):
            query = companies.where(filter=FieldFilter("ownerId", "==", owner_id)).limit(1)
            if list(transaction.get(query)):
                raise CompanyAlreadyExistsError()
            transaction.set(new_ref, convert_keys(payload, "snake_to_camel"))

        _create_company_transaction(self.client.transaction(), doc_ref)
        return from_dict(CompanyRecord, {**payload, "id": doc_ref.id}, config=_DACITE_CONFIG)

    def update_company(self, company_id, patch: dict) -> Optional[CompanyRecord]:
        return self._update(
            COMPANIES_COLLECTION, company_id, patch, COMPANY_FIELDS, CompanyRecord
        )

    # Services
    def get_service(self, service_id) -> Optional[ServiceRecord]:
        return self._get(SERVICES_COLLECTION, service_id, ServiceRecord)

    def list_company_services(self, company_id) -> list[ServiceRecord]:
        return self._list(SERVICES_COLLECTION, "companyId", company_id, ServiceRecord)

    def create_service(self, company_id, data: dict) -> ServiceRecord:
        now = utcnow()
        payload = {
            **pick_fields(data, SERVICE_FIELDS),
            "company_id": company_id,
            "created_at": now,
            "updated_at": now,
        }
        return self._add(SERVICES_COLLECTION, payload, ServiceRecord)

    def update_service(self, service_id, patch: dict) -> Optional[ServiceRecord]:
        return self._update(
            SERVICES_COLLECTION, service_id, patch, SERVICE_FIELDS, ServiceRecord
        )

    def delete_service(self, service_id) -> None:
        """
        Delete a service and its images.

        Small services go in a single batch. Larger ones are split into
        several batches with the service document in the last one, so a
        partial failure leaves the service in place and the delete can be
        retried.
        """
        images = self._collection(SERVICE_IMAGES_COLLECTION).where(
            filter=FieldFilter("serviceId", "==", service_id)
        )
        refs = [snapshot.reference for snapshot in images.stream()]
        refs.append(self._collection(SERVICES_COLLECTION).document(str(service_id)))
        starts = range(0, len(refs), MAX_BATCH_WRITES)
        for start in starts:
            batch = self.client.batch()
            for ref in refs[start : start + MAX_BATCH_WRITES]:
                batch.delete(ref)
            batch.commit()
        if len(starts) > 1:
            logger.info(
                "Deleted service %s with %d images in %d batches",
                service_id,
                len(refs) - 1,
                len(starts),
            )

    # Service images
    def get_service_image(self, image_id) -> Optional[ServiceImageRecord]:
        return self._get(SERVICE_IMAGES_COLLECTION, image_id, ServiceImageRecord)

    def list_service_images(self, service_id) -> list[ServiceImageRecord]:
        return self._list(
            SERVICE_IMAGES_COLLECTION, "serviceId", service_id, ServiceImageRecord
        )

    def create_service_image(
        self, service_id, url: str, storage_path: Optional[str] = None
    ) -> ServiceImageRecord:
        payload = {
            "service_id": service_id,
            "url": url,
            "storage_path": storage_path,
            "created_at": utcnow(),
        }
        return self._add(SERVICE_IMAGES_COLLECTION, payload, ServiceImageRecord)

    def delete_service_image(self, image_id) -> None:
        self._delete(SERVICE_IMAGES_COLLECTION, image_id)

    # Job offers
    def get_job_offer(self, job_offer_id) -> Optional[JobOfferRecord]:
        return self._get(JOB_OFFERS_COLLECTION, job_offer_id, JobOfferRecord)

    def list_company_job_offers(self, company_id) -> list[JobOfferRecord]:
        return self._list(JOB_OFFERS_COLLECTION, "companyId", company_id, JobOfferRecord)

    def create_job_offer(self, company_id, data: dict) -> JobOfferRecord:
        now = utcnow()
        payload = {
            **pick_fields(data, JOB_OFFER_FIELDS),
            "company_id": company_id,
            "created_at": now,
            "updated_at": now,
        }
        return self._add(JOB_OFFERS_COLLECTION, payload, JobOfferRecord)

    def update_job_offer(self, job_offer_id, patch: dict) -> Optional[JobOfferRecord]:
        return self._update(
            JOB_OFFERS_COLLECTION, job_offer_id, patch, JOB_OFFER_FIELDS, JobOfferRecord
        )

    def delete_job_offer(self, job_offer_id) -> None:
        self._delete(JOB_OFFERS_COLLECTION, job_offer_id)
