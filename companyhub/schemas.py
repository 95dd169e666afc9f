"""
Pydantic schemas for the directory API.

Request bodies are validated by hand in the routes (see ``validate_payload``)
so that the existence and ownership checks can run before validation, and so
validation failures surface as a 400 with a field error list.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Type, TypeVar, Union
from urllib.parse import urlparse

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from companyhub.errors import ValidationFailure, field_errors

ModelT = TypeVar("ModelT", bound=BaseModel)

EntityIdField = Union[int, str]


def _check_http_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid url")
    return value


HttpUrlStr = Annotated[str, AfterValidator(_check_http_url)]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def validate_payload(model: Type[ModelT], payload: Any, message: str) -> ModelT:
    """Validate a raw JSON body, raising ValidationFailure with field errors."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailure(message, field_errors(exc.errors())) from exc


def to_response(model: Type[ModelT], record, **extra) -> ModelT:
    return model.model_validate({**asdict(record), **extra})


# Requests


class CompanyCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    tax_id: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)
    website: Optional[str] = Field(None, max_length=255)


class CompanyUpdate(ApiModel):
    # Required columns may be omitted but not nulled.
    name: str = Field(None, min_length=1, max_length=255)
    description: str = Field(None, min_length=1)
    tax_id: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)
    website: Optional[str] = Field(None, max_length=255)


class ServiceCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    price: Optional[str] = Field(None, max_length=50)
    working_hours: Optional[str] = Field(None, max_length=100)


class ServiceUpdate(ApiModel):
    name: str = Field(None, min_length=1, max_length=255)
    description: str = Field(None, min_length=1)
    price: Optional[str] = Field(None, max_length=50)
    working_hours: Optional[str] = Field(None, max_length=100)


class ServiceImageCreate(ApiModel):
    url: HttpUrlStr


class JobOfferCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    employment_type: str = Field(..., min_length=1, max_length=50)
    salary_range: Optional[str] = Field(None, max_length=100)
    requirements: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_link: Optional[HttpUrlStr] = None


class JobOfferUpdate(ApiModel):
    title: str = Field(None, min_length=1, max_length=255)
    description: str = Field(None, min_length=1)
    employment_type: str = Field(None, min_length=1, max_length=50)
    salary_range: Optional[str] = Field(None, max_length=100)
    requirements: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_link: Optional[HttpUrlStr] = None


class UpdateProfileRequest(ApiModel):
    display_name: Optional[str] = Field(None, min_length=2)
    photo_url: Optional[HttpUrlStr] = Field(None, alias="photoURL")


# Responses


class CompanyResponse(ApiModel):
    id: EntityIdField
    owner_id: EntityIdField
    name: str
    description: str
    tax_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ServiceResponse(ApiModel):
    id: EntityIdField
    company_id: EntityIdField
    name: str
    description: str
    price: Optional[str] = None
    working_hours: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ServiceImageResponse(ApiModel):
    id: EntityIdField
    service_id: EntityIdField
    url: str
    created_at: datetime


class JobOfferResponse(ApiModel):
    id: EntityIdField
    company_id: EntityIdField
    title: str
    description: str
    employment_type: str
    salary_range: Optional[str] = None
    requirements: Optional[str] = None
    contact_email: Optional[str] = None
    contact_link: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class SuccessResponse(BaseModel):
    success: Literal[True] = True


class HealthResponse(BaseModel):
    status: Literal["healthy"] = "healthy"
