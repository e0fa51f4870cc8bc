"""Merchant profile persistence contract."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from functools import lru_cache
from typing import Protocol

import structlog
from pydantic import ValidationError

from settler.errors import InvalidRequest, MerchantAlreadyRegistered, MerchantNotFound
from settler.fees import validate_bps
from settler.models.merchant import MerchantProfile, MerchantProfileUpdate

logger = structlog.get_logger()


class MerchantStore(Protocol):
    """Read/write access to merchant profiles."""

    def get(self, merchant_id: int) -> MerchantProfile | None: ...

    def get_by_owner(self, owner: str) -> MerchantProfile | None: ...

    def create(self, profile: MerchantProfile) -> MerchantProfile: ...

    def update(self, merchant_id: int, changes: MerchantProfileUpdate) -> MerchantProfile: ...


class InMemoryMerchantStore:
    """Thread-safe in-process store, used in tests and single-node deployments."""

    def __init__(self, profiles: list[MerchantProfile] | None = None) -> None:
        self._lock = threading.Lock()
        self._profiles: dict[int, MerchantProfile] = {}
        for profile in profiles or []:
            self._profiles[profile.merchant_id] = profile

    def get(self, merchant_id: int) -> MerchantProfile | None:
        with self._lock:
            return self._profiles.get(merchant_id)

    def get_by_owner(self, owner: str) -> MerchantProfile | None:
        with self._lock:
            for profile in self._profiles.values():
                if profile.owner == owner:
                    return profile
        return None

    def create(self, profile: MerchantProfile) -> MerchantProfile:
        """Register a profile.

        Raises:
            MerchantAlreadyRegistered: If the id or the owner already has a profile
        """
        with self._lock:
            if profile.merchant_id in self._profiles:
                raise MerchantAlreadyRegistered(f"Merchant {profile.merchant_id} exists")
            if any(p.owner == profile.owner for p in self._profiles.values()):
                raise MerchantAlreadyRegistered(f"Owner {profile.owner} already registered")
            self._profiles[profile.merchant_id] = profile
        logger.info("merchant_registered", merchant_id=profile.merchant_id, owner=profile.owner)
        return profile

    def update(self, merchant_id: int, changes: MerchantProfileUpdate) -> MerchantProfile:
        """Apply a partial update.

        Raises:
            MerchantNotFound: If no profile has this id
            InvalidBasisPoints: If the resulting default split is invalid
            InvalidRequest: If the merged profile fails validation
        """
        with self._lock:
            current = self._profiles.get(merchant_id)
            if current is None:
                raise MerchantNotFound(f"Merchant {merchant_id} not found")
            data = current.model_dump()
            data.update(changes.changes())
            validate_bps(
                data["default_payout_bps"], data["default_buyback_bps"], data["default_burn_bps"]
            )
            data["updated_at"] = datetime.now(UTC)
            try:
                updated = MerchantProfile.model_validate(data)
            except ValidationError as err:
                raise InvalidRequest(f"Invalid profile update: {err}") from err
            self._profiles[merchant_id] = updated
        logger.info("merchant_updated", merchant_id=merchant_id, fields=sorted(changes.changes()))
        return updated


@lru_cache(maxsize=1)
def get_default_store() -> InMemoryMerchantStore:
    """Process-wide store used by the HTTP service."""
    return InMemoryMerchantStore()


__all__ = ["MerchantStore", "InMemoryMerchantStore", "get_default_store"]
