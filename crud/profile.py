"""
ProfileRepository for database operations on Profile model
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import Profile


class ProfileRepository:
    """
    Repository class for Profile database operations.
    Encapsulates all database logic for the Profile model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get(self, user_id: str) -> Optional[Profile]:
        """
        Retrieve a profile by ID.

        Args:
            user_id: Profile ID

        Returns:
            Profile object if found, None otherwise
        """
        return await self.db.get(Profile, user_id)

    async def create(self, profile_data: dict) -> Profile:
        """
        Create a new profile. New profiles always start on the free role
        with no premium fields.

        Args:
            profile_data: Dictionary containing profile data. Must include:
                - email: str
                - created_at: int (epoch ms)
                Optional:
                - name: str

        Returns:
            Created Profile object
        """
        profile = Profile(
            email=profile_data["email"].lower(),
            name=profile_data.get("name"),
            role="free",
            free_trial_used=False,
            created_at=profile_data["created_at"],
        )
        self.db.add(profile)
        await self.db.flush()  # Flush to get the ID without committing
        await self.db.refresh(profile)
        return profile

    async def patch(self, profile: Profile, updates: dict) -> Profile:
        """
        Partial update of profile fields. A value of None clears the field.

        Args:
            profile: Profile object to update
            updates: Dictionary of fields to update (e.g., {"role": "premium"})

        Returns:
            Updated Profile object
        """
        for key, value in updates.items():
            if hasattr(profile, key):
                setattr(profile, key, value)

        await self.db.flush()
        return profile

    async def page_premium(self, after_id: Optional[str], limit: int) -> List[Profile]:
        """
        Keyset page of premium profiles ordered by id, served by the (role, id) index.
        """
        stmt = select(Profile).where(Profile.role == "premium")
        if after_id is not None:
            stmt = stmt.where(Profile.id > after_id)
        stmt = stmt.order_by(Profile.id.asc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
