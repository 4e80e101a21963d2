"""
Profile storage for user knowledge bases.

Provides file-based storage for user profiles, one JSON file per user,
and the writer the review controller uses to promote accepted suggestions
into a user's custom fields.
"""

import json
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from formzilla.config import get_logger, get_settings
from formzilla.knowledge.profile import UserProfile


logger = get_logger(__name__)


class ProfileStoreError(Exception):
    """Base exception for profile storage errors."""

    pass


class PersistenceFailed(ProfileStoreError):
    """Raised when a profile cannot be written."""

    pass


class ProfileStore:
    """
    File-based storage for user profiles.

    Profiles are stored as JSON files named after a sanitized form of the
    user id. All writes go through one lock.
    """

    def __init__(self, storage_dir: str | Path) -> None:
        """
        Initialize the profile store.

        Args:
            storage_dir: Directory to store profile files.
        """
        self._storage_dir = Path(storage_dir)
        self._lock = threading.Lock()
        self._storage_dir.mkdir(parents=True, exist_ok=True)

    def _get_profile_path(self, user_id: str) -> Path:
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in user_id)
        return self._storage_dir / f"{safe_id}.json"

    def get(self, user_id: str) -> UserProfile | None:
        """
        Retrieve a user's profile.

        Returns:
            The profile, or None if the user has none or it is unreadable.
        """
        path = self._get_profile_path(user_id)
        if not path.exists():
            logger.debug("profile_not_found", user_id=user_id)
            return None

        try:
            with open(path, encoding="utf-8") as f:
                return UserProfile.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("profile_parse_error", user_id=user_id, error=str(e))
            return None
        except OSError as e:
            logger.error("profile_read_error", user_id=user_id, error=str(e))
            return None

    def _load_for_write(self, user_id: str) -> UserProfile:
        """
        Load the profile a write will build on.

        Only a missing file yields a fresh profile; unreadable data is never
        replaced.

        Raises:
            PersistenceFailed: If the stored profile cannot be read.
        """
        path = self._get_profile_path(user_id)
        if not path.exists():
            return UserProfile(user_id=user_id)

        try:
            with open(path, encoding="utf-8") as f:
                return UserProfile.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError, OSError) as e:
            logger.error("profile_load_for_write_failed", user_id=user_id, error=str(e))
            raise PersistenceFailed(f"Stored profile for {user_id} is unreadable: {e}") from e

    def save(self, profile: UserProfile) -> UserProfile:
        """
        Insert or replace a user's profile.

        Raises:
            PersistenceFailed: If the file cannot be written.
        """
        profile = profile.model_copy(update={"updated_at": datetime.now(UTC)})
        path = self._get_profile_path(profile.user_id)
        tmp_path = path.with_suffix(".json.tmp")

        try:
            with self._lock:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    f.write(profile.model_dump_json(indent=2))
                tmp_path.replace(path)
        except OSError as e:
            logger.error("profile_write_error", user_id=profile.user_id, error=str(e))
            raise PersistenceFailed(f"Failed to save profile for {profile.user_id}: {e}") from e

        logger.info("profile_stored", user_id=profile.user_id)
        return profile

    def update(self, user_id: str, changes: dict[str, Any]) -> UserProfile:
        """
        Apply a partial update, creating the profile if needed.

        Custom fields in the update replace the stored map.

        Raises:
            PersistenceFailed: If the stored profile is unreadable or the
                file cannot be written.
        """
        current = self._load_for_write(user_id)
        data = current.model_dump()
        data.update({k: v for k, v in changes.items() if k not in ("user_id", "created_at")})
        return self.save(UserProfile.model_validate(data))

    def upsert_custom_field(self, user_id: str, label: str, value: str) -> UserProfile:
        """
        Set one custom knowledge base entry, overwriting any prior value.

        Raises:
            ValueError: If the label is blank.
            PersistenceFailed: If the stored profile is unreadable or the
                file cannot be written.
        """
        label = label.strip()
        if not label:
            raise ValueError("Knowledge base label must not be empty")

        profile = self._load_for_write(user_id)
        custom_fields = {**profile.custom_fields, label: value}
        saved = self.save(profile.model_copy(update={"custom_fields": custom_fields}))

        logger.info("knowledge_entry_upserted", user_id=user_id, label=label)
        return saved

    def delete(self, user_id: str) -> bool:
        """
        Delete a user's profile.

        Returns:
            True if deleted, False if not found.
        """
        path = self._get_profile_path(user_id)
        if not path.exists():
            return False

        with self._lock:
            path.unlink(missing_ok=True)
        logger.info("profile_deleted", user_id=user_id)
        return True


class ProfileKnowledgeWriter:
    """Knowledge base writer bound to one user's profile."""

    def __init__(self, store: ProfileStore, user_id: str) -> None:
        self._store = store
        self._user_id = user_id

    async def upsert_entry(self, label: str, value: str) -> None:
        """
        Store an accepted suggestion as a custom field.

        Raises:
            PersistenceFailed: If the profile cannot be written.
        """
        try:
            self._store.upsert_custom_field(self._user_id, label, value)
        except ValueError as e:
            raise PersistenceFailed(str(e)) from e


# Module-level singleton
_profile_store: ProfileStore | None = None
_store_lock = threading.Lock()


def get_profile_store(storage_dir: str | Path | None = None) -> ProfileStore:
    """
    Get or create the profile store singleton.

    Args:
        storage_dir: Optional storage directory override.

    Returns:
        ProfileStore instance.
    """
    global _profile_store

    with _store_lock:
        if _profile_store is None:
            _profile_store = ProfileStore(
                storage_dir=storage_dir or get_settings().storage.profiles_dir,
            )

    return _profile_store
