"""
Ownership checks for the User -> Company -> {Service, JobOffer} -> ServiceImage tree.

Every check runs in two stages: existence (404) first, then ownership (403).
"""

from __future__ import annotations

from companyhub.db import (
    CompanyRecord,
    DbClient,
    EntityId,
    JobOfferRecord,
    ServiceImageRecord,
    ServiceRecord,
    UserRecord,
)
from companyhub.errors import AuthorizationError, InvalidIdentifierError, NotFoundError


def parse_entity_id(db: DbClient, raw: str, label: str) -> EntityId:
    try:
        return db.parse_id(raw)
    except ValueError as exc:
        raise InvalidIdentifierError(f"Invalid {label} ID") from exc


def is_owner(user: UserRecord, company: CompanyRecord) -> bool:
    return company.owner_id == user.id


def authorize(user: UserRecord, company: CompanyRecord, action: str) -> None:
    if not is_owner(user, company):
        raise AuthorizationError(f"Not authorized to {action}")


def load_company(db: DbClient, company_id: EntityId) -> CompanyRecord:
    company = db.get_company(company_id)
    if not company:
        raise NotFoundError("Company not found")
    return company


def require_company(
    db: DbClient, user: UserRecord, company_id: EntityId, action: str
) -> CompanyRecord:
    company = load_company(db, company_id)
    authorize(user, company, action)
    return company


def require_service(
    db: DbClient, user: UserRecord, service_id: EntityId, action: str
) -> tuple[ServiceRecord, CompanyRecord]:
    service = db.get_service(service_id)
    if not service:
        raise NotFoundError("Service not found")
    company = require_company(db, user, service.company_id, action)
    return service, company


def require_service_image(
    db: DbClient, user: UserRecord, image_id: EntityId, action: str
) -> tuple[ServiceImageRecord, ServiceRecord, CompanyRecord]:
    image = db.get_service_image(image_id)
    if not image:
        raise NotFoundError("Image not found")
    service, company = require_service(db, user, image.service_id, action)
    return image, service, company


def require_job_offer(
    db: DbClient, user: UserRecord, job_offer_id: EntityId, action: str
) -> tuple[JobOfferRecord, CompanyRecord]:
    job_offer = db.get_job_offer(job_offer_id)
    if not job_offer:
        raise NotFoundError("Job offer not found")
    company = require_company(db, user, job_offer.company_id, action)
    return job_offer, company
