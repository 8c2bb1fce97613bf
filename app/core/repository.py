from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.schemas import StoredUserSettings, Trip, UserInDB
from app.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def assign_missing_ids(trip: Trip) -> Trip:
    """Give every day and item without an id a stable one before persisting."""
    for day in trip.days:
        if not day.id:
            day.id = new_id("day")
        for item in day.items:
            if not item.id:
                item.id = new_id("item")
    return trip


class MongoDBRepo:
    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        if not settings.mongodb_uri:
            raise ValueError("MONGODB_URI environment variable is required")

        self.client = MongoClient(
            settings.mongodb_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,  # 5 second timeout
            connectTimeoutMS=10000,  # 10 second connection timeout
            socketTimeoutMS=20000,  # 20 second socket timeout
            retryWrites=True,
            retryReads=True,
        )
        self.db = self.client[settings.database_name]

        # Collections
        self.users_collection = self.db.users
        self.trips_collection = self.db.trips

        try:
            self.client.admin.command("ping")
            logger.info(f"MongoDB connection successful ({settings.database_name})")

            try:
                self.users_collection.create_index("email", unique=True)
                self.users_collection.create_index("id", unique=True)
                self.trips_collection.create_index("id", unique=True)
                self.trips_collection.create_index("owner_user_id")
                self.trips_collection.create_index("collaborators.user_id")
            except Exception as index_error:
                logger.warning(f"Index creation failed (might already exist): {index_error}")
        except Exception as e:
            logger.error(f"MongoDB connection failed: {str(e)[:200]}")

    # Users
    async def get_user_by_id(self, user_id: str) -> UserInDB | None:
        def _find_user():
            return self.users_collection.find_one({"id": user_id}, {"_id": 0})

        user_doc = await asyncio.to_thread(_find_user)
        return UserInDB(**user_doc) if user_doc else None

    async def get_user_by_email(self, email: str) -> UserInDB | None:
        def _find_user():
            return self.users_collection.find_one({"email": email.lower()}, {"_id": 0})

        user_doc = await asyncio.to_thread(_find_user)
        return UserInDB(**user_doc) if user_doc else None

    async def create_user(self, email: str, name: str, password_hash: str) -> UserInDB:
        """
        Raises:
            ValueError: If the email is already registered
        """
        now = utcnow()
        user_doc = {
            "id": new_id("user"),
            "email": email.lower(),
            "name": name.strip(),
            "password_hash": password_hash,
            "settings": StoredUserSettings().model_dump(),
            "created_at": now,
            "updated_at": now,
        }

        def _insert_user():
            self.users_collection.insert_one(dict(user_doc))

        try:
            await asyncio.to_thread(_insert_user)
        except DuplicateKeyError:
            raise ValueError("Email already registered")
        return UserInDB(**user_doc)

    async def update_user_settings(
        self, user_id: str, settings: StoredUserSettings
    ) -> UserInDB | None:
        def _update_user():
            return self.users_collection.find_one_and_update(
                {"id": user_id},
                {"$set": {"settings": settings.model_dump(), "updated_at": utcnow()}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )

        user_doc = await asyncio.to_thread(_update_user)
        return UserInDB(**user_doc) if user_doc else None

    # Trips
    async def list_trips_for_user(self, user_id: str) -> list[Trip]:
        """Trips the user owns or collaborates on, most recently updated first."""

        def _find_trips():
            return list(
                self.trips_collection.find(
                    {"$or": [{"owner_user_id": user_id}, {"collaborators.user_id": user_id}]},
                    {"_id": 0},
                ).sort("updated_at", -1)
            )

        docs = await asyncio.to_thread(_find_trips)
        return [Trip.model_validate(doc) for doc in docs]

    async def get_trip(self, trip_id: str) -> Trip | None:
        def _find_trip():
            return self.trips_collection.find_one({"id": trip_id}, {"_id": 0})

        doc = await asyncio.to_thread(_find_trip)
        if not doc:
            return None
        return Trip.model_validate(doc)

    async def create_trip(self, data: dict[str, Any]) -> Trip:
        now = utcnow()
        trip = Trip.model_validate(
            {**data, "id": new_id("trip"), "created_at": now, "updated_at": now}
        )
        assign_missing_ids(trip)
        doc = trip.model_dump()

        def _insert_trip():
            self.trips_collection.insert_one(doc)

        await asyncio.to_thread(_insert_trip)
        return trip

    async def save_trip(self, trip: Trip) -> Trip:
        """Persist the whole trip document (last write wins)."""
        assign_missing_ids(trip)
        trip.updated_at = utcnow()
        doc = trip.model_dump()

        def _replace_trip():
            return self.trips_collection.replace_one({"id": trip.id}, doc)

        result = await asyncio.to_thread(_replace_trip)
        if result.matched_count == 0:
            raise LookupError(f"Trip {trip.id} not found")
        return trip

    async def delete_trip(self, trip_id: str) -> bool:
        def _delete_trip():
            return self.trips_collection.delete_one({"id": trip_id})

        result = await asyncio.to_thread(_delete_trip)
        return result.deleted_count > 0


@lru_cache
def get_repo() -> MongoDBRepo:
    """Shared repository, created on first use."""
    return MongoDBRepo()
