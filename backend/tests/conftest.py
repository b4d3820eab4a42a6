"""Shared fixtures: an isolated in-memory database and a seeded household."""
import os

# Must be set before vetmed is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OFFLINE_QUEUE_DATABASE_URL", "sqlite://")
os.environ.setdefault("SEED_DEMO_DATA", "false")

from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import vetmed.models  # noqa: F401  registers every mapper
from vetmed.core.security import create_access_token
from vetmed.models.base import Base, generate_uuid
from vetmed.models.animal import Animal
from vetmed.models.household import Household, Membership, MembershipRole
from vetmed.models.medication import InventoryItem, MedicationCatalog
from vetmed.models.regimen import Regimen, ScheduleType
from vetmed.models.user import User


@pytest.fixture()
def session_factory(monkeypatch):
    """Sessionmaker bound to a fresh in-memory SQLite database."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    # Patch the module-level engine/SessionLocal used outside request scope
    import vetmed.models.base as mb
    import vetmed.core.audit_middleware as am

    monkeypatch.setattr(mb, "engine", test_engine)
    monkeypatch.setattr(mb, "SessionLocal", TestSession)
    monkeypatch.setattr(am, "SessionLocal", TestSession)

    yield TestSession
    test_engine.dispose()


@pytest.fixture()
def in_memory_db(session_factory):
    db = session_factory()
    yield db
    db.close()


def _user(db, subject: str, name: str) -> User:
    user = User(id=generate_uuid(), auth_subject=subject, email=f"{subject}@example.com", name=name)
    db.add(user)
    return user


def _regimen(db, animal, medication, schedule_type: ScheduleType, **kwargs) -> Regimen:
    regimen = Regimen(
        id=generate_uuid(),
        animal_id=animal.id,
        medication_id=medication.id,
        schedule_type=schedule_type.value,
        start_date=kwargs.pop("start_date", date(2026, 1, 1)),
        **kwargs,
    )
    db.add(regimen)
    return regimen


@pytest.fixture()
def household(in_memory_db):
    """
    One household (America/New_York) with an owner, a caregiver, a vet with
    read-only access, and an outsider who belongs to no household.
    """
    db = in_memory_db
    owner = _user(db, "owner-sub", "Olive Owner")
    caregiver = _user(db, "caregiver-sub", "Cal Caregiver")
    vet = _user(db, "vet-sub", "Dr. Vera")
    outsider = _user(db, "outsider-sub", "Otto Outsider")

    home = Household(id=generate_uuid(), name="Test Home", timezone="America/New_York")
    db.add(home)
    db.flush()
    for user, role in ((owner, MembershipRole.OWNER), (caregiver, MembershipRole.CAREGIVER), (vet, MembershipRole.VETREADONLY)):
        db.add(Membership(id=generate_uuid(), user_id=user.id, household_id=home.id, role=role))

    animal = Animal(id=generate_uuid(), household_id=home.id, name="Rex", species="dog", timezone="America/New_York")
    other_animal = Animal(id=generate_uuid(), household_id=home.id, name="Tom", species="cat", timezone="America/New_York")
    medication = MedicationCatalog(id=generate_uuid(), generic_name="Carprofen", strength="75 mg")
    prn_medication = MedicationCatalog(id=generate_uuid(), generic_name="Trazodone", strength="50 mg")
    db.add_all([animal, other_animal, medication, prn_medication])
    db.flush()

    item = InventoryItem(
        id=generate_uuid(),
        household_id=home.id,
        medication_id=medication.id,
        expires_on=date(2027, 12, 31),
        units_total=30,
        units_remaining=10,
    )
    expired_item = InventoryItem(
        id=generate_uuid(),
        household_id=home.id,
        medication_id=medication.id,
        expires_on=date(2026, 1, 31),
        units_remaining=5,
    )
    db.add_all([item, expired_item])

    fixed = _regimen(db, animal, medication, ScheduleType.FIXED, times_local=["08:00", "20:00"], dose="1 tablet")
    prn = _regimen(db, animal, prn_medication, ScheduleType.PRN, prn_reason="Storms")
    high_risk = _regimen(
        db, other_animal, medication, ScheduleType.FIXED,
        times_local=["09:00"], high_risk=True, requires_co_sign=True,
    )
    db.commit()

    return SimpleNamespace(
        db=db,
        owner=owner,
        caregiver=caregiver,
        vet=vet,
        outsider=outsider,
        household=home,
        animal=animal,
        other_animal=other_animal,
        medication=medication,
        item=item,
        expired_item=expired_item,
        fixed=fixed,
        prn=prn,
        high_risk=high_risk,
    )


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.auth_subject})}"}


@pytest.fixture()
def headers_for():
    return auth_headers


@pytest.fixture()
def client(session_factory):
    from fastapi.testclient import TestClient
    from vetmed.main import app
    from vetmed.models.base import get_db

    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
