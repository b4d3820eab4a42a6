"""
Demo data seeder for VetMed Tracker.

Creates a demo owner and a demo caregiver in one household, with a dog, a
medication in inventory, a twice-daily FIXED regimen and a PRN regimen, so
the recording screen has something to show immediately after a fresh start.

Sign in by minting a development token for one of the demo subjects:
  Owner    : sub=demo-owner
  Caregiver: sub=demo-caregiver

This seeder is idempotent - it is safe to call on every startup.
"""
import logging
from datetime import date, timedelta

from .models.base import SessionLocal, Base, engine, generate_uuid
from .models.user import User
from .models.household import Household, Membership, MembershipRole
from .models.animal import Animal
from .models.medication import MedicationCatalog, InventoryItem
from .models.regimen import Regimen, ScheduleType

logger = logging.getLogger(__name__)

DEMO_OWNER_SUBJECT = "demo-owner"
DEMO_CAREGIVER_SUBJECT = "demo-caregiver"
DEMO_HOUSEHOLD_NAME = "Demo Household"
DEMO_ANIMAL_NAME = "Biscuit"
DEMO_TIMEZONE = "America/New_York"


def seed_demo_data() -> None:
    """Create the demo household and its data if it does not already exist."""
    # Ensure tables exist (no-op when already created by main.py)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        owner = _seed_user(db, DEMO_OWNER_SUBJECT, "owner@vetmed.demo", "Demo Owner")
        caregiver = _seed_user(db, DEMO_CAREGIVER_SUBJECT, "caregiver@vetmed.demo", "Demo Caregiver")
        household = _seed_household(db, owner, caregiver)
        _seed_animal_and_regimens(db, household)
    finally:
        db.close()


# ── helpers ──────────────────────────────────────────────────────────────────

def _seed_user(db, subject: str, email: str, name: str) -> User:
    user = db.query(User).filter(User.auth_subject == subject).first()
    if user:
        return user
    user = User(id=generate_uuid(), auth_subject=subject, email=email, name=name, timezone=DEMO_TIMEZONE)
    db.add(user)
    db.commit()
    logger.info("[seed] Created demo user %s (sub=%s)", email, subject)
    return user


def _seed_household(db, owner: User, caregiver: User) -> Household:
    membership = (
        db.query(Membership)
        .join(Household)
        .filter(Membership.user_id == owner.id, Household.name == DEMO_HOUSEHOLD_NAME)
        .first()
    )
    if membership:
        return membership.household

    household = Household(id=generate_uuid(), name=DEMO_HOUSEHOLD_NAME, timezone=DEMO_TIMEZONE)
    db.add(household)
    db.add(Membership(id=generate_uuid(), user_id=owner.id, household_id=household.id, role=MembershipRole.OWNER))
    db.add(
        Membership(id=generate_uuid(), user_id=caregiver.id, household_id=household.id, role=MembershipRole.CAREGIVER)
    )
    db.commit()
    logger.info("[seed] Created demo household %s", household.id)
    return household


def _seed_animal_and_regimens(db, household: Household) -> None:
    if db.query(Animal).filter(Animal.household_id == household.id).first():
        return

    animal = Animal(
        id=generate_uuid(),
        household_id=household.id,
        name=DEMO_ANIMAL_NAME,
        species="dog",
        breed="Beagle",
        timezone=DEMO_TIMEZONE,
    )
    carprofen = MedicationCatalog(
        id=generate_uuid(),
        generic_name="Carprofen",
        brand_name="Rimadyl",
        strength="75 mg",
        route="ORAL",
        form="TABLET",
    )
    trazodone = MedicationCatalog(
        id=generate_uuid(),
        generic_name="Trazodone",
        strength="50 mg",
        route="ORAL",
        form="TABLET",
    )
    db.add_all([animal, carprofen, trazodone])

    db.add(
        InventoryItem(
            id=generate_uuid(),
            household_id=household.id,
            medication_id=carprofen.id,
            assigned_animal_id=animal.id,
            lot="DEMO-LOT-001",
            expires_on=date.today() + timedelta(days=365),
            units_total=60,
            units_remaining=60,
            unit_type="tablets",
            in_use=True,
            opened_on=date.today(),
        )
    )
    db.add(
        Regimen(
            id=generate_uuid(),
            animal_id=animal.id,
            medication_id=carprofen.id,
            name="Carprofen twice daily",
            schedule_type=ScheduleType.FIXED.value,
            times_local=["08:00", "20:00"],
            start_date=date.today() - timedelta(days=7),
            dose="1 tablet",
            route="ORAL",
            instructions="Give with food",
        )
    )
    db.add(
        Regimen(
            id=generate_uuid(),
            animal_id=animal.id,
            medication_id=trazodone.id,
            name="Trazodone as needed",
            schedule_type=ScheduleType.PRN.value,
            start_date=date.today() - timedelta(days=7),
            prn_reason="Anxiety before vet visits or storms",
            dose="1 tablet",
            route="ORAL",
        )
    )
    db.commit()
    logger.info("[seed] Created demo animal %s with 2 regimens", DEMO_ANIMAL_NAME)
