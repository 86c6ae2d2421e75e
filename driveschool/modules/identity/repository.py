"""Identity repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from driveschool.core.enums import RoleEnum
from driveschool.modules.identity.models import Role, User


class IdentityRepository:
    """DB operations for identity domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_role_by_name(self, role_name: RoleEnum) -> Role | None:
        stmt = select(Role).where(Role.name == role_name)
        return await self.session.scalar(stmt)

    async def create_role(self, role_name: RoleEnum) -> Role:
        role = Role(name=role_name)
        self.session.add(role)
        await self.session.flush()
        return role

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).options(selectinload(User.role)).where(User.email == email)
        return await self.session.scalar(stmt)

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        stmt = select(User).options(selectinload(User.role)).where(User.id == user_id)
        return await self.session.scalar(stmt)

    async def list_user_ids_by_role(self, role_name: RoleEnum) -> list[UUID]:
        stmt = (
            select(User.id)
            .join(Role, Role.id == User.role_id)
            .where(Role.name == role_name, User.is_active.is_(True))
            .order_by(User.created_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def create_user(
        self,
        email: str,
        display_name: str,
        password_hash: str,
        role_id: UUID,
    ) -> User:
        user = User(email=email, display_name=display_name, password_hash=password_hash, role_id=role_id)
        self.session.add(user)
        await self.session.flush()
        await self.session.refresh(user, attribute_names=["role"])
        return user
