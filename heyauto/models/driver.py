# heyauto/models/driver.py
import uuid

from sqlalchemy import Column, Boolean, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from ..db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Driver(Base):
    __tablename__ = "drivers"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)  # auth_users.id / аккаунт у провайдера

    # данные профиля
    name                     = Column(String(200), nullable=False)
    phone                    = Column(String(10), nullable=False)
    address                  = Column(String(500), nullable=False)
    auto_registration_number = Column(String(50), nullable=False)

    # фото (публичный URL) и права (путь в приватном бакете)
    photo_url            = Column(String(500), nullable=True)
    license_id_image_url = Column(String(500), nullable=True)

    # видимость и зона работы
    is_active       = Column(Boolean, default=False, nullable=False)
    active_state    = Column(String(100), nullable=True)
    active_district = Column(String(100), nullable=True)
    active_location = Column(String(200), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # один профиль на аккаунт, один аккаунт на телефон
        UniqueConstraint("user_id", name="uniq_driver_per_user"),
        UniqueConstraint("phone", name="uniq_driver_phone"),
    )
