# stray_match/demo/seed_demo_data.py

from datetime import datetime, timedelta
from typing import Dict

from stray_match.core.geo import Coordinates, format_point
from stray_match.storage.animals import AnimalRepository
from stray_match.storage.db import DEFAULT_DB_PATH
from stray_match.storage.models import AnimalRecord, AnimalType, LostAnimalRecord, Profile
from stray_match.storage.profiles import ProfileRepository
from stray_match.storage.schema import initialize_schema

DEMO_OWNER = "demo-owner"
DEMO_FINDER = "demo-finder"
DEMO_TOKEN = "demo-token"


def seed_demo_data(db_path: str = DEFAULT_DB_PATH) -> Dict[str, str]:
    """Seed a lost white cat, a matching sighting nearby and a brown dog.

    Re-running against the same database is a no-op.

    Returns:
        Ids of the seeded records and the demo bearer token
    """
    initialize_schema(db_path)
    now = datetime.now()
    ids = {
        "lost_animal_id": "lost-whiskers",
        "sighting_id": "sighting-white-cat",
        "dog_sighting_id": "sighting-brown-dog",
        "token": DEMO_TOKEN,
        "user_id": DEMO_FINDER,
    }

    animals = AnimalRepository(db_path)
    if animals.get_lost_animal(ids["lost_animal_id"]) is not None:
        return ids

    profiles = ProfileRepository(db_path)
    profiles.upsert_profile(Profile(id=DEMO_OWNER, push_token="ExponentPushToken[demo-owner]"))
    profiles.upsert_profile(Profile(id=DEMO_FINDER))
    profiles.add_token(DEMO_TOKEN, DEMO_FINDER)

    animals.insert_lost_animal(LostAnimalRecord(
        id=ids["lost_animal_id"],
        owner_id=DEMO_OWNER,
        name="Whiskers",
        animal_type=AnimalType.CAT,
        location=format_point(Coordinates(latitude=40.0, longitude=-73.0)),
        photo_ref="https://example.org/photos/whiskers.jpg",
        created_at=now - timedelta(days=12),
        color="white",
        breed="domestic shorthair",
        description="Small white cat with a pink nose",
        distinctive_features=("pink nose", "notched left ear"),
    ))
    animals.insert_sighting(AnimalRecord(
        id=ids["sighting_id"],
        user_id=DEMO_FINDER,
        animal_type=AnimalType.CAT,
        location=format_point(Coordinates(latitude=40.01, longitude=-73.01)),
        photo_ref="https://example.org/photos/white-cat.jpg",
        spotted_at=now - timedelta(days=2),
        color="white",
        breed="domestic shorthair",
        description="White cat hiding under a parked car",
    ))
    animals.insert_sighting(AnimalRecord(
        id=ids["dog_sighting_id"],
        user_id=DEMO_FINDER,
        animal_type=AnimalType.DOG,
        location=format_point(Coordinates(latitude=40.02, longitude=-73.02)),
        photo_ref="https://example.org/photos/brown-dog.jpg",
        spotted_at=now - timedelta(days=1),
        color="brown",
        breed="labrador mix",
    ))
    return ids


if __name__ == "__main__":
    seed_demo_data()
    print("Demo data inserted")
