"""User registry: role and display fields for identity-provider subjects."""

from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from medilocker.errors import ForbiddenError, ValidationError
from medilocker.models import User, UserRole
from medilocker.services.identity import Principal
from medilocker.utils.time import utcnow

MIN_SEARCH_LENGTH = 2


class UserRepository(Protocol):
    async def get(self, user_id: str) -> Optional[User]:
        ...

    async def save(self, user: User) -> User:
        ...

    async def search(self, role: UserRole, query: str, limit: int) -> list[User]:
        ...

    async def list_by_role(self, role: UserRole) -> list[User]:
        ...


class SQLUserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def save(self, user: User) -> User:
        user = await self.db.merge(user)
        await self.db.commit()
        return user

    async def search(self, role: UserRole, query: str, limit: int) -> list[User]:
        pattern = f"%{query.lower()}%"
        result = await self.db.execute(
            select(User)
            .where(
                User.role == role.value,
                or_(
                    func.lower(User.display_name).like(pattern),
                    func.lower(User.email).like(pattern),
                ),
            )
            .order_by(User.display_name)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_role(self, role: UserRole) -> list[User]:
        result = await self.db.execute(
            select(User).where(User.role == role.value).order_by(User.display_name)
        )
        return list(result.scalars().all())


class InMemoryUserRepository:
    """In-memory repository for tests and local demos."""

    def __init__(self):
        self._users: dict[str, User] = {}

    async def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def save(self, user: User) -> User:
        self._users[user.id] = user
        return user

    async def search(self, role: UserRole, query: str, limit: int) -> list[User]:
        needle = query.lower()
        matches = [
            u
            for u in self._users.values()
            if u.role == role.value
            and (needle in u.display_name.lower() or needle in (u.email or "").lower())
        ]
        return sorted(matches, key=lambda u: u.display_name)[:limit]

    async def list_by_role(self, role: UserRole) -> list[User]:
        return sorted(
            (u for u in self._users.values() if u.role == role.value),
            key=lambda u: u.display_name,
        )


class UserDirectory:
    """Registration, lookup and search over the user registry."""

    def __init__(self, repo: UserRepository):
        self.repo = repo

    async def get(self, user_id: str) -> Optional[User]:
        return await self.repo.get(user_id)

    async def register(
        self,
        principal: Principal,
        display_name: Optional[str] = None,
        specialization: Optional[str] = None,
        condition_tags: Optional[list[str]] = None,
    ) -> User:
        """Create or refresh the caller's registry entry. Role comes from the token."""
        name = (display_name or principal.display_name or "").strip()
        if not name:
            raise ValidationError("Display name is required")
        if principal.is_patient and (specialization or condition_tags):
            raise ValidationError("Only doctors have a specialization")

        existing = await self.repo.get(principal.subject_id)
        if existing is not None and existing.role != principal.role.value:
            raise ForbiddenError("This account is already registered with a different role")

        now = utcnow()
        user = existing or User(id=principal.subject_id, role=principal.role.value, created_at=now)
        user.display_name = name
        user.email = principal.email or user.email
        if principal.is_doctor:
            user.specialization = (specialization or "").strip() or user.specialization
            if condition_tags is not None:
                user.condition_tags = ",".join(
                    sorted({t.strip().lower() for t in condition_tags if t.strip()})
                ) or None
        user.updated_at = now
        return await self.repo.save(user)

    async def search_patients(self, principal: Principal, query: str, limit: int = 10) -> list[User]:
        if not principal.is_doctor:
            raise ForbiddenError("Only doctors can search patients")
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_LENGTH:
            return []
        return await self.repo.search(UserRole.patient, query, max(1, min(limit, 25)))

    async def doctors(self) -> list[User]:
        return await self.repo.list_by_role(UserRole.doctor)
