# heyauto/seed.py
# Стартовый справочник локаций для локального провайдера: 14 районов Кералы,
# в каждом — районный центр как первая подлокация.
from __future__ import annotations

import logging

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from .models.location import Location

logger = logging.getLogger(__name__)

KERALA_DISTRICTS = {
    "Alappuzha": "Alappuzha",
    "Ernakulam": "Kochi",
    "Idukki": "Painavu",
    "Kannur": "Kannur",
    "Kasaragod": "Kasaragod",
    "Kollam": "Kollam",
    "Kottayam": "Kottayam",
    "Kozhikode": "Kozhikode",
    "Malappuram": "Malappuram",
    "Palakkad": "Palakkad",
    "Pathanamthitta": "Pathanamthitta",
    "Thiruvananthapuram": "Thiruvananthapuram",
    "Thrissur": "Thrissur",
    "Wayanad": "Kalpetta",
}


def seed_locations(db: Session, state: str = "Kerala") -> int:
    """Заполнить пустую таблицу locations. Возвращает число добавленных строк."""
    count = db.execute(select(func.count()).select_from(Location)).scalar_one()
    if count:
        return 0
    for district, town in sorted(KERALA_DISTRICTS.items()):
        db.add(Location(state=state, district=district, sub_location=town))
    db.commit()
    logger.info("seeded %d locations for %s", len(KERALA_DISTRICTS), state)
    return len(KERALA_DISTRICTS)
