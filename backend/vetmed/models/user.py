from sqlalchemy import Column, String
from .base import Base, TimestampMixin, generate_uuid


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    # Subject claim issued by the external identity provider
    auth_subject = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=True, index=True)
    name = Column(String(200), nullable=True)
    timezone = Column(String(64), nullable=True)
