"""Seed demo users (profiles, photos, interests) for local development.

Usage: python -m scripts.seed_users [--count 200] [--create-tables] [--out user_ids.txt]
"""
import argparse
import asyncio
import random
import sys
import uuid
from datetime import date, datetime, timedelta, timezone

sys.path.insert(0, ".")

from sqlalchemy import select

import app.models  # noqa: F401
from app.config import get_settings
from app.database import Base, build_engine, build_session_factory
from app.models.preferences import Gender, RelationshipType
from app.models.user import GenderPreference, Interest, Photo, User


INTERESTS = {
    "outdoors": ["hiking", "climbing", "cycling", "surfing", "camping"],
    "culture": ["jazz", "cinema", "museums", "theatre", "photography"],
    "food": ["cooking", "wine", "coffee", "baking", "street food"],
    "mind": ["chess", "reading", "podcasts", "languages", "board games"],
}

# (name, latitude, longitude)
CITIES = [
    ("Paris", 48.8566, 2.3522),
    ("Lyon", 45.7640, 4.8357),
    ("Brussels", 50.8503, 4.3517),
    ("London", 51.5074, -0.1278),
    ("Amsterdam", 52.3676, 4.9041),
]

FIRST_NAMES = ["Alex", "Sam", "Camille", "Noa", "Jules", "Robin", "Lou", "Charlie", "Eden", "Sasha"]
EDUCATION = ["High school", "Bachelors", "Masters", "PhD"]
SMOKING = ["Never", "Socially", "Regularly"]
DRINKING = ["Never", "Socially", "Often"]
LANGUAGES = ["French", "English", "Dutch", "German", "Spanish"]


async def _interests(session) -> list[Interest]:
    existing = {i.name: i for i in (await session.execute(select(Interest))).scalars().all()}
    for category, names in INTERESTS.items():
        for name in names:
            if name not in existing:
                existing[name] = Interest(name=name, category=category)
                session.add(existing[name])
    await session.flush()
    return list(existing.values())


def _random_user(index: int, interests: list[Interest], now: datetime) -> User:
    city, lat, lon = random.choice(CITIES)
    gender = random.choice(list(Gender))
    everyone = random.random() < 0.2
    age = random.randint(19, 55)

    user = User(
        email=f"seed-{index}-{uuid.uuid4().hex[:8]}@example.com",
        display_name=random.choice(FIRST_NAMES),
        birth_date=date(now.year - age, random.randint(1, 12), random.randint(1, 28)),
        gender=gender,
        interested_in_everyone=everyone,
        bio=random.choice([None, "Coffee first, questions later."]),
        education=random.choice(EDUCATION),
        profession=random.choice([None, "Engineer", "Designer", "Nurse", "Teacher"]),
        smoking=random.choice(SMOKING),
        drinking=random.choice(DRINKING),
        languages=random.sample(LANGUAGES, k=random.randint(1, 3)),
        relationship_types=random.sample(list(RelationshipType), k=random.randint(1, 2)),
        location=city,
        latitude=lat + random.uniform(-0.3, 0.3),
        longitude=lon + random.uniform(-0.3, 0.3),
        is_premium=random.random() < 0.1,
        last_active_at=now - timedelta(days=random.randint(0, 45)),
        created_at=now,
    )
    user.photos = [
        Photo(url=f"https://picsum.photos/seed/{uuid.uuid4().hex}/600/800", position=i, is_main=i == 0)
        for i in range(random.randint(1, 4))
    ]
    user.interests = random.sample(interests, k=random.randint(0, 5))
    if not everyone:
        wanted = random.sample(list(Gender), k=random.randint(1, 2))
        user.gender_preferences = [GenderPreference(gender=g) for g in wanted]
    return user


async def seed(count: int, create_tables: bool, out: str | None) -> None:
    engine = build_engine(get_settings())
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("  Tables created.")

    now = datetime.now(timezone.utc)
    session_factory = build_session_factory(engine)
    async with session_factory() as session:
        interests = await _interests(session)
        users = [_random_user(i, interests, now) for i in range(count)]
        session.add_all(users)
        await session.commit()
    await engine.dispose()

    print(f"  Seeded {len(users)} users with {len(interests)} interests available.")
    if out:
        with open(out, "w") as f:
            f.write("\n".join(str(u.id) for u in users) + "\n")
        print(f"  User ids written to {out}")
    print("Done seeding users.")


def main():
    parser = argparse.ArgumentParser(description="Seed Ember demo users")
    parser.add_argument("--count", type=int, default=200, help="Number of users to create")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    parser.add_argument("--out", type=str, default=None, help="File to write the new user ids to")
    args = parser.parse_args()

    asyncio.run(seed(args.count, args.create_tables, args.out))


if __name__ == "__main__":
    main()
