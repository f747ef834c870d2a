"""Identity resolution: external platform account -> stable internal User."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.user import User
from app.schemas.attributes import Platform, merge_attributes
from app.utils.db.upsert import insert_for

logger = logging.getLogger(__name__)

# Profile columns a caller may supply; anything else goes to the attribute bag
PROFILE_FIELDS = (
    "username",
    "display_name",
    "email",
    "avatar_url",
    "language_code",
    "timezone",
    "is_bot",
)


def _split_attrs(attrs: Optional[dict[str, Any]]) -> tuple[dict[str, Any], dict[str, Any]]:
    attrs = dict(attrs or {})
    bag = attrs.pop("attributes", None) or {}
    profile = {k: attrs.pop(k) for k in list(attrs) if k in PROFILE_FIELDS}
    # Leftover keys are extension data
    bag = merge_attributes(bag, attrs)
    return profile, bag


class IdentityResolver:
    """Maps (platform, platform_user_id) to a User, creating or merging as needed."""

    def __init__(self, db: Session, autocommit: bool = True) -> None:
        self.db = db
        self.autocommit = autocommit

    def resolve(
        self,
        platform: Platform | str,
        platform_user_id: str,
        attrs: Optional[dict[str, Any]] = None,
        seen_at: Optional[datetime] = None,
    ) -> User:
        """
        Get or create the User for an external identity.

        On first occurrence the supplied attrs are merged over defaults. On
        repeat occurrences non-null attrs are merged into the existing row and
        last_seen_at is refreshed. Concurrent first occurrences converge on one
        row: the losing insert falls through to the merge path.
        """
        platform_value = Platform(platform).value
        seen_at = seen_at or datetime.now(timezone.utc)
        profile, bag = _split_attrs(attrs)

        values = {
            "id": uuid.uuid4(),
            "platform": platform_value,
            "platform_user_id": platform_user_id,
            "display_name": platform_user_id,
            "language_code": "en",
            "is_bot": False,
            "last_seen_at": seen_at,
            "attributes": bag,
        }
        values.update({k: v for k, v in profile.items() if v is not None})

        stmt = (
            insert_for(self.db, User)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["platform", "platform_user_id"])
            .returning(User.id)
        )
        inserted_id = self.db.execute(stmt).scalar_one_or_none()
        if inserted_id is not None:
            user = self.db.get(User, inserted_id)
            logger.info(
                "Created user %s for %s:%s", inserted_id, platform_value, platform_user_id
            )
        else:
            user = self._merge_existing(
                platform_value, platform_user_id, profile, bag, seen_at
            )
        self._finish()
        return user

    def _merge_existing(
        self,
        platform: str,
        platform_user_id: str,
        profile: dict[str, Any],
        bag: dict[str, Any],
        seen_at: datetime,
    ) -> User:
        user = self.db.execute(
            select(User)
            .where(User.platform == platform, User.platform_user_id == platform_user_id)
            .with_for_update()
        ).scalar_one()
        for key, value in profile.items():
            if value is not None:
                setattr(user, key, value)
        if bag:
            user.attributes = merge_attributes(user.attributes, bag)
        user.last_seen_at = seen_at
        self.db.flush()
        return user

    def get(self, platform: Platform | str, platform_user_id: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(
                User.platform == Platform(platform).value,
                User.platform_user_id == platform_user_id,
            )
            .first()
        )

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def _finish(self) -> None:
        if self.autocommit:
            self.db.commit()
        else:
            self.db.flush()
