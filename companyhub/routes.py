"""
HTTP routes for the company directory API.

Every handler follows the same order: parse ids, existence check, ownership
check, body validation, write, response shaping.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Body, Depends, File, UploadFile

from companyhub.auth import get_current_user, get_principal, resolve_user
from companyhub.config import Settings, get_settings
from companyhub.db import DbClient, ServiceImageRecord, ServiceRecord, UserRecord
from companyhub.dependencies import (
    get_db_client,
    get_identity_provider,
    get_storage_client,
)
from companyhub.errors import CompanyAlreadyExistsError, ValidationFailure
from companyhub.identity import IdentityProvider, Principal
from companyhub.ownership import (
    load_company,
    parse_entity_id,
    require_company,
    require_job_offer,
    require_service,
    require_service_image,
)
from companyhub.schemas import (
    CompanyCreate,
    CompanyResponse,
    CompanyUpdate,
    JobOfferCreate,
    JobOfferResponse,
    JobOfferUpdate,
    ServiceCreate,
    ServiceImageCreate,
    ServiceImageResponse,
    ServiceResponse,
    ServiceUpdate,
    SuccessResponse,
    UpdateProfileRequest,
    to_response,
    validate_payload,
)
from companyhub.storage import StorageClient, service_image_path

logger = logging.getLogger(__name__)

router = APIRouter()

# Settings keys that belong to the identity token, not to the profile document.
_RESERVED_PROFILE_KEYS = {"uid", "email"}


def _image_url(storage: StorageClient, image: ServiceImageRecord) -> str:
    # Uploaded objects are resolved per response; signed URLs expire.
    if image.storage_path:
        return storage.public_url(image.storage_path)
    return image.url


def _image_response(
    storage: StorageClient, image: ServiceImageRecord
) -> ServiceImageResponse:
    return to_response(ServiceImageResponse, image, url=_image_url(storage, image))


def _service_response(
    db: DbClient, storage: StorageClient, service: ServiceRecord
) -> ServiceResponse:
    images = [_image_url(storage, image) for image in db.list_service_images(service.id)]
    return to_response(ServiceResponse, service, images=images)


def _remove_stored_object(storage: StorageClient, path: str) -> None:
    try:
        storage.delete(path)
    except Exception as exc:
        logger.warning("Could not delete stored image %s: %s", path, exc)


# Auth and user profile


@router.get("/auth/me")
def auth_me(
    principal: Principal = Depends(get_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    profile = identity.get_profile(principal.uid) or {}
    return {
        **profile,
        "uid": principal.uid,
        "email": profile.get("email") or principal.email,
    }


@router.put("/user/profile", response_model=SuccessResponse)
def update_user_profile(
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(get_principal),
    db: DbClient = Depends(get_db_client),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    update = validate_payload(UpdateProfileRequest, payload, "Invalid profile data")
    identity.update_profile(
        principal.uid, update.model_dump(by_alias=True, exclude_unset=True)
    )

    user = resolve_user(principal, db, identity)
    db.update_user(user.id, update.model_dump(exclude_unset=True))
    return SuccessResponse()


@router.post("/user/settings", response_model=SuccessResponse)
def update_user_settings(
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(get_principal),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    settings = {k: v for k, v in payload.items() if k not in _RESERVED_PROFILE_KEYS}
    identity.update_profile(principal.uid, settings)
    return SuccessResponse()


# Companies


@router.get("/companies", response_model=list[CompanyResponse])
def list_companies(
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return [to_response(CompanyResponse, c) for c in db.list_user_companies(user.id)]


@router.post("/companies", response_model=CompanyResponse, status_code=201)
def create_company(
    payload: dict[str, Any] = Body(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    data = validate_payload(CompanyCreate, payload, "Invalid company data")
    if db.list_user_companies(user.id):
        raise CompanyAlreadyExistsError()
    company = db.create_company(user.id, data.model_dump())
    logger.info("Company %s created for user %s", company.id, user.id)
    return to_response(CompanyResponse, company)


@router.get("/companies/{company_id}", response_model=CompanyResponse)
def get_company(
    company_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    company = load_company(db, parse_entity_id(db, company_id, "company"))
    return to_response(CompanyResponse, company)


@router.put("/companies/{company_id}", response_model=CompanyResponse)
def update_company(
    company_id: str,
    payload: dict[str, Any] = Body(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    company = require_company(
        db, user, parse_entity_id(db, company_id, "company"), "update this company"
    )
    patch = validate_payload(CompanyUpdate, payload, "Invalid company data")
    updated = db.update_company(company.id, patch.model_dump(exclude_unset=True))
    return to_response(CompanyResponse, updated)


# Services


@router.get("/companies/{company_id}/services", response_model=list[ServiceResponse])
def list_services(
    company_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    company = require_company(
        db,
        user,
        parse_entity_id(db, company_id, "company"),
        "view services for this company",
    )
    return [_service_response(db, storage, s) for s in db.list_company_services(company.id)]


@router.post(
    "/companies/{company_id}/services", response_model=ServiceResponse, status_code=201
)
def create_service(
    company_id: str,
    payload: dict[str, Any] = Body(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    company = require_company(
        db,
        user,
        parse_entity_id(db, company_id, "company"),
        "create services for this company",
    )
    data = validate_payload(ServiceCreate, payload, "Invalid service data")
    service = db.create_service(company.id, data.model_dump())
    return to_response(ServiceResponse, service, images=[])


@router.get("/services/{service_id}", response_model=ServiceResponse)
def get_service(
    service_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    service, _ = require_service(
        db, user, parse_entity_id(db, service_id, "service"), "view this service"
    )
    return _service_response(db, storage, service)


@router.put("/services/{service_id}", response_model=ServiceResponse)
def update_service(
    service_id: str,
    payload: dict[str, Any] = Body(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    service, _ = require_service(
        db, user, parse_entity_id(db, service_id, "service"), "update this service"
    )
    patch = validate_payload(ServiceUpdate, payload, "Invalid service data")
    updated = db.update_service(service.id, patch.model_dump(exclude_unset=True))
    return _service_response(db, storage, updated)


@router.delete("/services/{service_id}", response_model=SuccessResponse)
def delete_service(
    service_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    service, _ = require_service(
        db, user, parse_entity_id(db, service_id, "service"), "delete this service"
    )
    stored_paths = [
        image.storage_path
        for image in db.list_service_images(service.id)
        if image.storage_path
    ]
    db.delete_service(service.id)
    for path in stored_paths:
        _remove_stored_object(storage, path)
    logger.info("Service %s deleted with %d stored images", service.id, len(stored_paths))
    return SuccessResponse()


# Service images


@router.post(
    "/services/{service_id}/images",
    response_model=ServiceImageResponse,
    status_code=201,
)
def add_service_image(
    service_id: str,
    payload: dict[str, Any] = Body(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    service, _ = require_service(
        db,
        user,
        parse_entity_id(db, service_id, "service"),
        "add images to this service",
    )
    data = validate_payload(ServiceImageCreate, payload, "Invalid image data")
    image = db.create_service_image(service.id, data.url)
    return to_response(ServiceImageResponse, image)


@router.post(
    "/services/{service_id}/images/upload",
    response_model=ServiceImageResponse,
    status_code=201,
)
def upload_service_image(
    service_id: str,
    file: UploadFile = File(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
):
    service, company = require_service(
        db,
        user,
        parse_entity_id(db, service_id, "service"),
        "add images to this service",
    )
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise ValidationFailure(
            "Invalid image data",
            [{"path": ["file"], "message": "Image file required", "type": "content_type"}],
        )

    max_bytes = settings.max_image_bytes
    too_large = file.size is not None and file.size > max_bytes
    if not too_large:
        data = file.file.read(max_bytes + 1)
        too_large = len(data) > max_bytes
    if too_large:
        raise ValidationFailure(
            "Invalid image data",
            [
                {
                    "path": ["file"],
                    "message": f"Image exceeds {max_bytes} bytes",
                    "type": "too_large",
                }
            ],
        )

    path = service_image_path(
        company.id, service.id, file.filename or "image", int(time.time() * 1000)
    )
    storage.upload_bytes(path, data, content_type)
    image = db.create_service_image(service.id, storage.public_url(path), storage_path=path)
    logger.info("Uploaded %s (%d bytes) for service %s", path, len(data), service.id)
    return _image_response(storage, image)


@router.get("/service-images/{image_id}", response_model=ServiceImageResponse)
def get_service_image(
    image_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    image, _, _ = require_service_image(
        db, user, parse_entity_id(db, image_id, "image"), "view this image"
    )
    return _image_response(storage, image)


@router.delete("/service-images/{image_id}", response_model=SuccessResponse)
def delete_service_image(
    image_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    image, _, _ = require_service_image(
        db, user, parse_entity_id(db, image_id, "image"), "delete this image"
    )
    db.delete_service_image(image.id)
    if image.storage_path:
        _remove_stored_object(storage, image.storage_path)
    return SuccessResponse()


# Job offers


@router.get(
    "/companies/{company_id}/job-offers", response_model=list[JobOfferResponse]
)
def list_job_offers(
    company_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    company = require_company(
        db,
        user,
        parse_entity_id(db, company_id, "company"),
        "view job offers for this company",
    )
    return [
        to_response(JobOfferResponse, j)
        for j in db.list_company_job_offers(company.id)
    ]


@router.post(
    "/companies/{company_id}/job-offers",
    response_model=JobOfferResponse,
    status_code=201,
)
def create_job_offer(
    company_id: str,
    payload: dict[str, Any] = Body(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    company = require_company(
        db,
        user,
        parse_entity_id(db, company_id, "company"),
        "create job offers for this company",
    )
    data = validate_payload(JobOfferCreate, payload, "Invalid job offer data")
    job_offer = db.create_job_offer(company.id, data.model_dump())
    return to_response(JobOfferResponse, job_offer)


@router.get("/job-offers/{job_offer_id}", response_model=JobOfferResponse)
def get_job_offer(
    job_offer_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    job_offer, _ = require_job_offer(
        db, user, parse_entity_id(db, job_offer_id, "job offer"), "view this job offer"
    )
    return to_response(JobOfferResponse, job_offer)


@router.put("/job-offers/{job_offer_id}", response_model=JobOfferResponse)
def update_job_offer(
    job_offer_id: str,
    payload: dict[str, Any] = Body(...),
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    job_offer, _ = require_job_offer(
        db,
        user,
        parse_entity_id(db, job_offer_id, "job offer"),
        "update this job offer",
    )
    patch = validate_payload(JobOfferUpdate, payload, "Invalid job offer data")
    updated = db.update_job_offer(job_offer.id, patch.model_dump(exclude_unset=True))
    return to_response(JobOfferResponse, updated)


@router.delete("/job-offers/{job_offer_id}", response_model=SuccessResponse)
def delete_job_offer(
    job_offer_id: str,
    user: UserRecord = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    job_offer, _ = require_job_offer(
        db,
        user,
        parse_entity_id(db, job_offer_id, "job offer"),
        "delete this job offer",
    )
    db.delete_job_offer(job_offer.id)
    return SuccessResponse()
