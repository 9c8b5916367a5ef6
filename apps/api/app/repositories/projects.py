from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.projects import ApiKey, Project
from ..models.project import ApiKeyModel, ProjectModel


class ProjectsRepository(Protocol):
    async def create(self, project: Project) -> Project: ...

    async def get(self, project_id: UUID) -> Project | None: ...

    async def add_api_key(self, api_key: ApiKey, *, revoke_existing: bool = True) -> ApiKey: ...

    async def authenticate(self, key_hash: str) -> Project | None:
        """Return the active project owning a non-revoked key and stamp ``last_used_at``."""
        ...


class InMemoryProjectsRepository(ProjectsRepository):
    """Dictionary backed repository used by tests and local tooling."""

    def __init__(self) -> None:
        self._projects: dict[UUID, Project] = {}
        self._keys: dict[UUID, ApiKey] = {}

    async def create(self, project: Project) -> Project:
        self._projects[project.id] = project
        return project

    async def get(self, project_id: UUID) -> Project | None:
        return self._projects.get(project_id)

    async def add_api_key(self, api_key: ApiKey, *, revoke_existing: bool = True) -> ApiKey:
        if revoke_existing:
            now = datetime.utcnow()
            for key_id, existing in list(self._keys.items()):
                if existing.project_id == api_key.project_id and existing.revoked_at is None:
                    self._keys[key_id] = existing.model_copy(update={"revoked_at": now})
        self._keys[api_key.id] = api_key
        return api_key

    async def authenticate(self, key_hash: str) -> Project | None:
        for key_id, api_key in self._keys.items():
            if api_key.key_hash != key_hash or api_key.revoked_at is not None:
                continue
            project = self._projects.get(api_key.project_id)
            if project is None or not project.is_active:
                return None
            self._keys[key_id] = api_key.model_copy(update={"last_used_at": datetime.utcnow()})
            return project
        return None


class SqlAlchemyProjectsRepository(ProjectsRepository):
    """SQL-backed project and API key repository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, project: Project) -> Project:
        model = ProjectModel(**project.model_dump())
        self._session.add(model)
        await self._session.commit()
        return Project.model_validate(model)

    async def get(self, project_id: UUID) -> Project | None:
        model = await self._session.get(ProjectModel, project_id)
        if model is None:
            return None
        return Project.model_validate(model)

    async def add_api_key(self, api_key: ApiKey, *, revoke_existing: bool = True) -> ApiKey:
        if revoke_existing:
            await self._session.execute(
                update(ApiKeyModel)
                .where(
                    ApiKeyModel.project_id == api_key.project_id,
                    ApiKeyModel.revoked_at.is_(None),
                )
                .values(revoked_at=datetime.utcnow())
            )
        model = ApiKeyModel(**api_key.model_dump())
        self._session.add(model)
        await self._session.commit()
        return ApiKey.model_validate(model)

    async def authenticate(self, key_hash: str) -> Project | None:
        result = await self._session.execute(
            select(ApiKeyModel, ProjectModel)
            .join(ProjectModel, ProjectModel.id == ApiKeyModel.project_id)
            .where(
                ApiKeyModel.key_hash == key_hash,
                ApiKeyModel.revoked_at.is_(None),
                ProjectModel.is_active.is_(True),
            )
        )
        row = result.first()
        if row is None:
            return None
        key_model, project_model = row
        key_model.last_used_at = datetime.utcnow()
        await self._session.commit()
        return Project.model_validate(project_model)
