from sqlalchemy import Column, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class MembershipRole:
    OWNER = "OWNER"
    CAREGIVER = "CAREGIVER"
    VETREADONLY = "VETREADONLY"

    ALL = [OWNER, CAREGIVER, VETREADONLY]


class Household(Base, TimestampMixin):
    __tablename__ = "households"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String(200), nullable=False)
    timezone = Column(String(64), nullable=False, default="America/New_York")

    memberships = relationship("Membership", back_populates="household", cascade="all, delete-orphan")
    animals = relationship("Animal", back_populates="household", cascade="all, delete-orphan")


class Membership(Base, TimestampMixin):
    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("user_id", "household_id", name="uq_membership_user_household"),)

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    household_id = Column(String, ForeignKey("households.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default=MembershipRole.CAREGIVER)

    household = relationship("Household", back_populates="memberships")
    user = relationship("User")
