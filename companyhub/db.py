"""
Database abstraction for Postgres and an in-memory test implementation.

The Firestore implementation lives in ``companyhub.firestore_db``. All three
return the record dataclasses defined here, so route handlers never need to
know which backend is active.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Union

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from companyhub.errors import CompanyAlreadyExistsError

logger = logging.getLogger(__name__)

EntityId = Union[int, str]

USER_FIELDS = ("email", "display_name", "photo_url")
COMPANY_FIELDS = ("name", "description", "tax_id", "address", "phone", "website")
SERVICE_FIELDS = ("name", "description", "price", "working_hours")
JOB_OFFER_FIELDS = (
    "title",
    "description",
    "employment_type",
    "salary_range",
    "requirements",
    "contact_email",
    "contact_link",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def pick_fields(data: dict[str, Any], allowed: tuple[str, ...]) -> dict[str, Any]:
    """Keep only the writable columns of an entity."""
    return {key: value for key, value in data.items() if key in allowed}


@dataclass
class UserRecord:
    id: EntityId
    uid: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class CompanyRecord:
    id: EntityId
    owner_id: EntityId
    name: str
    description: str
    tax_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ServiceRecord:
    id: EntityId
    company_id: EntityId
    name: str
    description: str
    price: Optional[str] = None
    working_hours: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ServiceImageRecord:
    id: EntityId
    service_id: EntityId
    url: str
    storage_path: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class JobOfferRecord:
    id: EntityId
    company_id: EntityId
    title: str
    description: str
    employment_type: str
    salary_range: Optional[str] = None
    requirements: Optional[str] = None
    contact_email: Optional[str] = None
    contact_link: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class DbClient(Protocol):
    """Interface for database access."""

    def parse_id(self, raw: str) -> EntityId:
        """Convert a path segment into a backend id; raise ValueError if malformed."""
        ...

    # Users
    def get_user(self, user_id: EntityId) -> Optional[UserRecord]:
        ...

    def get_user_by_uid(self, uid: str) -> Optional[UserRecord]:
        ...

    def create_user(
        self,
        uid: str,
        email: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> UserRecord:
        ...

    def update_user(self, user_id: EntityId, patch: dict) -> Optional[UserRecord]:
        ...

    # Companies
    def get_company(self, company_id: EntityId) -> Optional[CompanyRecord]:
        ...

    def list_user_companies(self, owner_id: EntityId) -> list[CompanyRecord]:
        ...

    def create_company(self, owner_id: EntityId, data: dict) -> CompanyRecord:
        ...

    def update_company(
        self, company_id: EntityId, patch: dict
    ) -> Optional[CompanyRecord]:
        ...

    # Services
    def get_service(self, service_id: EntityId) -> Optional[ServiceRecord]:
        ...

    def list_company_services(self, company_id: EntityId) -> list[ServiceRecord]:
        ...

    def create_service(self, company_id: EntityId, data: dict) -> ServiceRecord:
        ...

    def update_service(
        self, service_id: EntityId, patch: dict
    ) -> Optional[ServiceRecord]:
        ...

    def delete_service(self, service_id: EntityId) -> None:
        """Delete a service together with all of its images."""
        ...

    # Service images
    def get_service_image(self, image_id: EntityId) -> Optional[ServiceImageRecord]:
        ...

    def list_service_images(self, service_id: EntityId) -> list[ServiceImageRecord]:
        ...

    def create_service_image(
        self, service_id: EntityId, url: str, storage_path: Optional[str] = None
    ) -> ServiceImageRecord:
        ...

    def delete_service_image(self, image_id: EntityId) -> None:
        ...

    # Job offers
    def get_job_offer(self, job_offer_id: EntityId) -> Optional[JobOfferRecord]:
        ...

    def list_company_job_offers(self, company_id: EntityId) -> list[JobOfferRecord]:
        ...

    def create_job_offer(self, company_id: EntityId, data: dict) -> JobOfferRecord:
        ...

    def update_job_offer(
        self, job_offer_id: EntityId, patch: dict
    ) -> Optional[JobOfferRecord]:
        ...

    def delete_job_offer(self, job_offer_id: EntityId) -> None:
        ...


_INT_ID_PATTERN = re.compile(r"[0-9]+")
# Integer primary keys are int4 on Postgres.
MAX_INT_ID = 2**31 - 1


def _parse_int_id(raw: str) -> int:
    text = str(raw).strip()
    if not _INT_ID_PATTERN.fullmatch(text):
        raise ValueError(f"invalid id: {raw!r}")
    value = int(text)
    if not 1 <= value <= MAX_INT_ID:
        raise ValueError(f"id out of range: {raw!r}")
    return value


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[int, UserRecord] = {}
        self.companies: Dict[int, CompanyRecord] = {}
        self.services: Dict[int, ServiceRecord] = {}
        self.service_images: Dict[int, ServiceImageRecord] = {}
        self.job_offers: Dict[int, JobOfferRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def _new_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.companies.clear()
            self.services.clear()
            self.service_images.clear()
            self.job_offers.clear()

    def parse_id(self, raw: str) -> int:
        return _parse_int_id(raw)

    def _patch(self, table: dict, record_id, patch: dict, allowed: tuple[str, ...]):
        with self._lock:
            record = table.get(record_id)
            if not record:
                return None
            updated = replace(record, **pick_fields(patch, allowed), updated_at=utcnow())
            table[record_id] = updated
            return updated

    # Users
    def get_user(self, user_id) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_uid(self, uid: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.uid == uid:
                return user
        return None

    def create_user(
        self,
        uid: str,
        email: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> UserRecord:
        with self._lock:
            existing = self.get_user_by_uid(uid)
            if existing:
                return existing
            record = UserRecord(
                id=self._new_id(),
                uid=uid,
                email=email,
                display_name=display_name,
                photo_url=photo_url,
            )
            self.users[record.id] = record
            return record

    def update_user(self, user_id, patch: dict) -> Optional[UserRecord]:
        return self._patch(self.users, user_id, patch, USER_FIELDS)

    # Companies
    def get_company(self, company_id) -> Optional[CompanyRecord]:
        return self.companies.get(company_id)

    def list_user_companies(self, owner_id) -> list[CompanyRecord]:
        return [c for c in self.companies.values() if c.owner_id == owner_id]

    def create_company(self, owner_id, data: dict) -> CompanyRecord:
        with self._lock:
            if self.list_user_companies(owner_id):
                raise CompanyAlreadyExistsError()
            record = CompanyRecord(
                id=self._new_id(),
                owner_id=owner_id,
                **pick_fields(data, COMPANY_FIELDS),
            )
            self.companies[record.id] = record
            return record

    def update_company(self, company_id, patch: dict) -> Optional[CompanyRecord]:
        return self._patch(self.companies, company_id, patch, COMPANY_FIELDS)

    # Services
    def get_service(self, service_id) -> Optional[ServiceRecord]:
        return self.services.get(service_id)

    def list_company_services(self, company_id) -> list[ServiceRecord]:
        return [s for s in self.services.values() if s.company_id == company_id]

    def create_service(self, company_id, data: dict) -> ServiceRecord:
        with self._lock:
            record = ServiceRecord(
                id=self._new_id(),
                company_id=company_id,
                **pick_fields(data, SERVICE_FIELDS),
            )
            self.services[record.id] = record
            return record

    def update_service(self, service_id, patch: dict) -> Optional[ServiceRecord]:
        return self._patch(self.services, service_id, patch, SERVICE_FIELDS)

    def delete_service(self, service_id) -> None:
        with self._lock:
            for image_id in [
                i.id for i in self.service_images.values() if i.service_id == service_id
            ]:
                del self.service_images[image_id]
            self.services.pop(service_id, None)

    # Service images
    def get_service_image(self, image_id) -> Optional[ServiceImageRecord]:
        return self.service_images.get(image_id)

    def list_service_images(self, service_id) -> list[ServiceImageRecord]:
        return [i for i in self.service_images.values() if i.service_id == service_id]

    def create_service_image(
        self, service_id, url: str, storage_path: Optional[str] = None
    ) -> ServiceImageRecord:
        with self._lock:
            record = ServiceImageRecord(
                id=self._new_id(),
                service_id=service_id,
                url=url,
                storage_path=storage_path,
            )
            self.service_images[record.id] = record
            return record

    def delete_service_image(self, image_id) -> None:
        with self._lock:
            self.service_images.pop(image_id, None)

    # Job offers
    def get_job_offer(self, job_offer_id) -> Optional[JobOfferRecord]:
        return self.job_offers.get(job_offer_id)

    def list_company_job_offers(self, company_id) -> list[JobOfferRecord]:
        return [j for j in self.job_offers.values() if j.company_id == company_id]

    def create_job_offer(self, company_id, data: dict) -> JobOfferRecord:
        with self._lock:
            record = JobOfferRecord(
                id=self._new_id(),
                company_id=company_id,
                **pick_fields(data, JOB_OFFER_FIELDS),
            )
            self.job_offers[record.id] = record
            return record

    def update_job_offer(self, job_offer_id, patch: dict) -> Optional[JobOfferRecord]:
        return self._patch(self.job_offers, job_offer_id, patch, JOB_OFFER_FIELDS)

    def delete_job_offer(self, job_offer_id) -> None:
        with self._lock:
            self.job_offers.pop(job_offer_id, None)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        engine_kwargs: dict[str, Any] = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise every thread sees an empty database.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def parse_id(self, raw: str) -> int:
        return _parse_int_id(raw)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            uid=row.uid,
            email=row.email,
            display_name=row.display_name,
            photo_url=row.photo_url,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    def _to_company_record(self, row: "CompanyRow") -> CompanyRecord:
        return CompanyRecord(
            id=row.id,
            owner_id=row.owner_id,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
            **{name: getattr(row, name) for name in COMPANY_FIELDS},
        )

    def _to_service_record(self, row: "ServiceRow") -> ServiceRecord:
        return ServiceRecord(
            id=row.id,
            company_id=row.company_id,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
            **{name: getattr(row, name) for name in SERVICE_FIELDS},
        )

    def _to_image_record(self, row: "ServiceImageRow") -> ServiceImageRecord:
        return ServiceImageRecord(
            id=row.id,
            service_id=row.service_id,
            url=row.url,
            storage_path=row.storage_path,
            created_at=_as_utc(row.created_at),
        )

    def _to_job_offer_record(self, row: "JobOfferRow") -> JobOfferRecord:
        return JobOfferRecord(
            id=row.id,
            company_id=row.company_id,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
            **{name: getattr(row, name) for name in JOB_OFFER_FIELDS},
        )

    def _get(self, model, record_id, convert):
        with self.Session() as session:
            row = session.get(model, record_id)
            return convert(row) if row else None

    def _list(self, model, column, value, convert):
        with self.Session() as session:
            rows = session.execute(
                select(model).where(column == value).order_by(model.id.asc())
            ).scalars()
            return [convert(row) for row in rows]

    def _insert(self, row, convert):
        with self.Session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return convert(row)

    def _update(self, model, record_id, patch: dict, allowed, convert):
        with self.Session() as session:
            row = session.get(model, record_id)
            if not row:
                return None
            for key, value in pick_fields(patch, allowed).items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            session.commit()
            session.refresh(row)
            return convert(row)

    def _delete(self, model, record_id) -> None:
        with self.Session() as session:
            session.execute(delete(model).where(model.id == record_id))
            session.commit()

    # Users
    def get_user(self, user_id) -> Optional[UserRecord]:
        return self._get(UserRow, user_id, self._to_user_record)

    def get_user_by_uid(self, uid: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.uid == uid)
            ).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def create_user(
        self,
        uid: str,
        email: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> UserRecord:
        now = utcnow()
        row = UserRow(
            uid=uid,
            email=email,
            display_name=display_name,
            photo_url=photo_url,
            created_at=now,
            updated_at=now,
        )
        try:
            return self._insert(row, self._to_user_record)
        except IntegrityError:
            # Lost a race against a concurrent first request for the same uid.
            logger.info("User %s already created concurrently, re-reading", uid)
            existing = self.get_user_by_uid(uid)
            if existing is None:
                raise
            return existing

    def update_user(self, user_id, patch: dict) -> Optional[UserRecord]:
        return self._update(UserRow, user_id, patch, USER_FIELDS, self._to_user_record)

    # Companies
    def get_company(self, company_id) -> Optional[CompanyRecord]:
        return self._get(CompanyRow, company_id, self._to_company_record)

    def list_user_companies(self, owner_id) -> list[CompanyRecord]:
        return self._list(
            CompanyRow, CompanyRow.owner_id, owner_id, self._to_company_record
        )

    def create_company(self, owner_id, data: dict) -> CompanyRecord:
        now = utcnow()
        row = CompanyRow(
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            **pick_fields(data, COMPANY_FIELDS),
        )
        try:
            return self._insert(row, self._to_company_record)
        except IntegrityError as exc:
            raise CompanyAlreadyExistsError() from exc

    def update_company(self, company_id, patch: dict) -> Optional[CompanyRecord]:
        return self._update(
            CompanyRow, company_id, patch, COMPANY_FIELDS, self._to_company_record
        )

    # Services
    def get_service(self, service_id) -> Optional[ServiceRecord]:
        return self._get(ServiceRow, service_id, self._to_service_record)

    def list_company_services(self, company_id) -> list[ServiceRecord]:
        return self._list(
            ServiceRow, ServiceRow.company_id, company_id, self._to_service_record
        )

    def create_service(self, company_id, data: dict) -> ServiceRecord:
        now = utcnow()
        row = ServiceRow(
            company_id=company_id,
            created_at=now,
            updated_at=now,
            **pick_fields(data, SERVICE_FIELDS),
        )
        return self._insert(row, self._to_service_record)

    def update_service(self, service_id, patch: dict) -> Optional[ServiceRecord]:
        return self._update(
            ServiceRow, service_id, patch, SERVICE_FIELDS, self._to_service_record
        )

    def delete_service(self, service_id) -> None:
        # Images first, then the service, in one transaction.
        with self.Session() as session:
            session.execute(
                delete(ServiceImageRow).where(ServiceImageRow.service_id == service_id)
            )
            session.execute(delete(ServiceRow).where(ServiceRow.id == service_id))
            session.commit()

    # Service images
    def get_service_image(self, image_id) -> Optional[ServiceImageRecord]:
        return self._get(ServiceImageRow, image_id, self._to_image_record)

    def list_service_images(self, service_id) -> list[ServiceImageRecord]:
        return self._list(
            ServiceImageRow,
            ServiceImageRow.service_id,
            service_id,
            self._to_image_record,
        )

    def create_service_image(
        self, service_id, url: str, storage_path: Optional[str] = None
    ) -> ServiceImageRecord:
        row = ServiceImageRow(
            service_id=service_id,
            url=url,
            storage_path=storage_path,
            created_at=utcnow(),
        )
        return self._insert(row, self._to_image_record)

    def delete_service_image(self, image_id) -> None:
        self._delete(ServiceImageRow, image_id)

    # Job offers
    def get_job_offer(self, job_offer_id) -> Optional[JobOfferRecord]:
        return self._get(JobOfferRow, job_offer_id, self._to_job_offer_record)

    def list_company_job_offers(self, company_id) -> list[JobOfferRecord]:
        return self._list(
            JobOfferRow, JobOfferRow.company_id, company_id, self._to_job_offer_record
        )

    def create_job_offer(self, company_id, data: dict) -> JobOfferRecord:
        now = utcnow()
        row = JobOfferRow(
            company_id=company_id,
            created_at=now,
            updated_at=now,
            **pick_fields(data, JOB_OFFER_FIELDS),
        )
        return self._insert(row, self._to_job_offer_record)

    def update_job_offer(self, job_offer_id, patch: dict) -> Optional[JobOfferRecord]:
        return self._update(
            JobOfferRow,
            job_offer_id,
            patch,
            JOB_OFFER_FIELDS,
            self._to_job_offer_record,
        )

    def delete_job_offer(self, job_offer_id) -> None:
        self._delete(JobOfferRow, job_offer_id)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uid = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class CompanyRow(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    tax_id = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    phone = Column(String(20), nullable=True)
    website = Column(String(255), nullable=True)
    # unique: one company per owner
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ServiceRow(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(String(50), nullable=True)
    working_hours = Column(String(100), nullable=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ServiceImageRow(Base):
    __tablename__ = "service_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(Text, nullable=False)
    storage_path = Column(Text, nullable=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class JobOfferRow(Base):
    __tablename__ = "job_offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    employment_type = Column(String(50), nullable=False)
    salary_range = Column(String(100), nullable=True)
    requirements = Column(Text, nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_link = Column(Text, nullable=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
