"""Branch directory: where branches are and whether they are open for business."""

import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from uuid import UUID

import aiohttp
from loguru import logger

from ..constants import Pools
from ..core.exceptions import BranchDirectoryError
from ..core.geo import haversine_km
from ..core.retry import get_directory_retry
from ..models.entities import Branch

NEARBY_PATH = "/api/organization-branches/search/nearby"
BRANCH_PATH = "/api/organization-branches/{branch_id}"


class BranchDirectory(ABC):
    """Abstract source of branch locations."""

    @abstractmethod
    async def find_nearby_active_branches(
        self, latitude: float, longitude: float, radius_km: float
    ) -> List[Branch]:
        """
        Find active branches within a radius of a point.

        Args:
            latitude: Latitude in degrees
            longitude: Longitude in degrees
            radius_km: Search radius in kilometres

        Returns:
            Active branches inside the radius
        """
        pass

    @abstractmethod
    async def get_branch(self, branch_id: UUID) -> Optional[Branch]:
        """Get one branch by ID."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


class InMemoryBranchDirectory(BranchDirectory):
    """Directory over a fixed set of branches."""

    def __init__(self, branches: Optional[List[Branch]] = None):
        self._branches: Dict[UUID, Branch] = {}
        for branch in branches or []:
            self.add_branch(branch)

    def add_branch(self, branch: Branch) -> None:
        """Register or replace a branch."""
        self._branches[branch.branch_id] = branch

    async def find_nearby_active_branches(
        self, latitude: float, longitude: float, radius_km: float
    ) -> List[Branch]:
        return [
            branch
            for branch in self._branches.values()
            if branch.is_active
            and branch.has_location
            and haversine_km(latitude, longitude, branch.latitude, branch.longitude) <= radius_km  # type: ignore[arg-type]
        ]

    async def get_branch(self, branch_id: UUID) -> Optional[Branch]:
        return self._branches.get(branch_id)


class HttpBranchDirectory(BranchDirectory):
    """Client for the organization branch service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize branch directory client.

        Args:
            base_url: Service base URL without trailing slash
            timeout: Total request timeout in seconds
            session: Existing session to reuse (not closed by this client)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_session = session
        self._owns_session = session is None

    def _session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            connector = aiohttp.TCPConnector(
                limit=Pools.HTTP_LIMIT,
                limit_per_host=Pools.HTTP_LIMIT_PER_HOST,
                ttl_dns_cache=Pools.DNS_CACHE_TTL,
                keepalive_timeout=Pools.KEEPALIVE_TIMEOUT,
            )
            self._http_session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
            logger.info("Branch directory HTTP session initialized")
        return self._http_session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._http_session and self._owns_session:
            await self._http_session.close()
        self._http_session = None

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with self._session().get(url, params=params) as response:
                if response.status == 404:
                    return None
                if response.status >= 400:
                    error_text = await response.text()
                    logger.error(
                        f"Branch directory error (status={response.status}): {error_text[:200]}"
                    )
                    raise BranchDirectoryError(
                        f"Branch directory returned {response.status}",
                        status=response.status,
                        recoverable=response.status >= 500 or response.status == 429,
                    )
                try:
                    return await response.json()
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise BranchDirectoryError(
                        f"Non-JSON response from branch directory: {response.status}",
                        status=response.status,
                        recoverable=False,
                    ) from e
        except aiohttp.ClientError as e:
            logger.warning(f"Branch directory request failed: {e}")
            raise BranchDirectoryError(f"Branch directory unreachable: {e}") from e

    @get_directory_retry()
    async def find_nearby_active_branches(
        self, latitude: float, longitude: float, radius_km: float
    ) -> List[Branch]:
        data = await self._get_json(
            NEARBY_PATH,
            params={
                "latitude": str(latitude),
                "longitude": str(longitude),
                "radiusKm": str(max(1, math.ceil(radius_km))),
            },
        )
        branches: List[Branch] = []
        for item in data or []:
            try:
                branch = Branch.from_payload(item)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed branch payload: {e}")
                continue
            if branch.is_active:
                branches.append(branch)
        logger.debug(f"Branch directory returned {len(branches)} active branches near ({latitude}, {longitude})")
        return branches

    @get_directory_retry()
    async def get_branch(self, branch_id: UUID) -> Optional[Branch]:
        data = await self._get_json(BRANCH_PATH.format(branch_id=branch_id))
        if not data:
            return None
        return Branch.from_payload(data)
