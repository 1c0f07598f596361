"""Service types and the branches that offer them."""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from ..models.entities import ServiceType
from .base import PostgresRepository


class ServiceCatalog(ABC):
    """Abstract store for the service-type tree and branch offerings."""

    @abstractmethod
    async def list_branches_offering(self, service_type_ids: Iterable[UUID]) -> Set[UUID]:
        """Branches with an active offering of any of the given service types."""
        pass

    @abstractmethod
    async def list_service_types(self) -> List[ServiceType]:
        """All active service types."""
        pass

    @abstractmethod
    async def get_service_type_name(self, service_type_id: UUID, language: str) -> Optional[str]:
        """Localized name of a service type."""
        pass

    @abstractmethod
    async def add_service_type(
        self, service_type: ServiceType, names: Optional[Dict[str, str]] = None
    ) -> ServiceType:
        """Store a service type and its localized names."""
        pass

    @abstractmethod
    async def assign_service(self, branch_id: UUID, service_type_id: UUID, active: bool = True) -> None:
        """Record that a branch offers (or stopped offering) a service type."""
        pass

    async def expand_service_tree(self, service_type_id: UUID) -> Set[UUID]:
        """
        Collect a service type and all of its active descendants.

        Args:
            service_type_id: Root of the subtree

        Returns:
            IDs of the root and every descendant
        """
        children: Dict[Optional[UUID], List[UUID]] = defaultdict(list)
        for service_type in await self.list_service_types():
            children[service_type.parent_id].append(service_type.id)

        found = {service_type_id}
        stack = [service_type_id]
        while stack:
            for child in children.get(stack.pop(), []):
                if child not in found:
                    found.add(child)
                    stack.append(child)
        return found


class PostgresServiceCatalog(PostgresRepository, ServiceCatalog):
    """Catalogue in ``service_types``, ``service_type_langs`` and ``center_services``."""

    def _row_to_service_type(self, row: Any) -> ServiceType:
        return ServiceType(
            id=row["id"],
            code=row["code"],
            parent_id=row.get("parent_id"),
            is_active=row["is_active"],
        )

    async def list_branches_offering(self, service_type_ids: Iterable[UUID]) -> Set[UUID]:
        ids = list(service_type_ids)
        if not ids:
            return set()
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT DISTINCT branch_id FROM center_services
                WHERE service_type_id = ANY($1::uuid[]) AND is_active = TRUE
                """,
                ids,
            )
            return {row["branch_id"] for row in rows}

    async def list_service_types(self) -> List[ServiceType]:
        async with self._connection() as conn:
            rows = await conn.fetch("SELECT * FROM service_types WHERE is_active = TRUE")
            return [self._row_to_service_type(row) for row in rows]

    async def get_service_type_name(self, service_type_id: UUID, language: str) -> Optional[str]:
        async with self._connection() as conn:
            return await conn.fetchval(
                """
                SELECT name FROM service_type_langs
                WHERE service_type_id = $1 AND language_code = $2
                """,
                service_type_id,
                language,
            )

    async def add_service_type(
        self, service_type: ServiceType, names: Optional[Dict[str, str]] = None
    ) -> ServiceType:
        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO service_types (id, code, parent_id, is_active)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (id) DO UPDATE
                    SET code = EXCLUDED.code, parent_id = EXCLUDED.parent_id,
                        is_active = EXCLUDED.is_active
                    """,
                    service_type.id,
                    service_type.code,
                    service_type.parent_id,
                    service_type.is_active,
                )
                for language, name in (names or {}).items():
                    await conn.execute(
                        """
                        INSERT INTO service_type_langs (service_type_id, language_code, name)
                        VALUES ($1, $2, $3)
                        ON CONFLICT (service_type_id, language_code) DO UPDATE SET name = EXCLUDED.name
                        """,
                        service_type.id,
                        language,
                        name,
                    )
        return service_type

    async def assign_service(self, branch_id: UUID, service_type_id: UUID, active: bool = True) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO center_services (branch_id, service_type_id, is_active)
                VALUES ($1, $2, $3)
                ON CONFLICT (branch_id, service_type_id) DO UPDATE SET is_active = EXCLUDED.is_active
                """,
                branch_id,
                service_type_id,
                active,
            )


class InMemoryServiceCatalog(ServiceCatalog):
    """In-memory catalogue (single process only)."""

    def __init__(self) -> None:
        self._service_types: Dict[UUID, ServiceType] = {}
        self._names: Dict[Tuple[UUID, str], str] = {}
        self._offerings: Dict[Tuple[UUID, UUID], bool] = {}
        self._lock = asyncio.Lock()

    async def list_branches_offering(self, service_type_ids: Iterable[UUID]) -> Set[UUID]:
        wanted = set(service_type_ids)
        return {
            branch_id
            for (branch_id, service_type_id), active in self._offerings.items()
            if active and service_type_id in wanted
        }

    async def list_service_types(self) -> List[ServiceType]:
        return [replace(s) for s in self._service_types.values() if s.is_active]

    async def get_service_type_name(self, service_type_id: UUID, language: str) -> Optional[str]:
        return self._names.get((service_type_id, language))

    async def add_service_type(
        self, service_type: ServiceType, names: Optional[Dict[str, str]] = None
    ) -> ServiceType:
        async with self._lock:
            self._service_types[service_type.id] = replace(service_type)
            for language, name in (names or {}).items():
                self._names[(service_type.id, language)] = name
        return service_type

    async def assign_service(self, branch_id: UUID, service_type_id: UUID, active: bool = True) -> None:
        async with self._lock:
            self._offerings[(branch_id, service_type_id)] = active
