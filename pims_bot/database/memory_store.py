"""
In-memory ProfileStore

Один процесс, один asyncio.Lock на всё хранилище: каждая операция -
критическая секция, поэтому commit_match атомарен относительно любых
других операций. Используется при STORAGE_BACKEND=memory и в тестах.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..core.error_handling import PreconditionError, StorageUnavailable
from ..models import Category, Gender, GrantRedemption, Profile
from .profile_store import ProfileStore

logger = logging.getLogger(__name__)


class MemoryProfileStore(ProfileStore):
    """Thread-unsafe, asyncio-safe in-memory store"""

    def __init__(self):
        self._profiles: Dict[int, Profile] = {}
        self._pairs: Set[Tuple[int, int]] = set()
        self._grants: Set[Tuple[int, str]] = set()
        self._lock = asyncio.Lock()
        self._available = True

    @property
    def available(self) -> bool:
        return self._available

    def set_available(self, value: bool):
        """Переключить degraded mode (для тестов и диагностики)"""
        self._available = value

    def _check(self):
        if not self._available:
            raise StorageUnavailable("Memory store marked unavailable")

    async def get(self, user_id: int) -> Optional[Profile]:
        self._check()
        async with self._lock:
            profile = self._profiles.get(user_id)
            return profile.with_updates() if profile else None

    async def upsert(self, profile: Profile) -> None:
        self._check()
        async with self._lock:
            self._profiles[profile.id] = profile.with_updates()

    async def set_attribute(
        self,
        user_id: int,
        creativity: Optional[str] = None,
        gender: Optional[Gender] = None
    ) -> None:
        self._check()
        async with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                return
            if creativity is not None:
                profile = profile.with_updates(creativity=creativity)
            if gender is not None:
                profile = profile.with_updates(gender=gender)
            self._profiles[user_id] = profile

    async def delete_all(self, user_id: int) -> None:
        self._check()
        async with self._lock:
            self._profiles.pop(user_id, None)
            self._pairs = {pair for pair in self._pairs if user_id not in pair}
            self._grants = {grant for grant in self._grants if grant[0] != user_id}

        logger.info(f"🧹 All data removed for user {user_id}")

    async def adjust_credits(self, user_id: int, delta: int) -> Optional[int]:
        self._check()
        async with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                return None
            credits = max(profile.credits + delta, 0)
            self._profiles[user_id] = profile.with_updates(credits=credits)
            return credits

    async def record_pair(self, a: int, b: int) -> None:
        self._check()
        async with self._lock:
            self._pairs.add((a, b))
            self._pairs.add((b, a))

    async def has_met(self, a: int, b: int) -> bool:
        self._check()
        async with self._lock:
            return (a, b) in self._pairs

    async def met_partner_ids(self, user_id: int, candidate_ids: Iterable[int]) -> Set[int]:
        self._check()
        async with self._lock:
            return {cid for cid in candidate_ids if (user_id, cid) in self._pairs}

    async def find_candidates(
        self,
        category: Category,
        exclude_id: int,
        gender: Optional[Gender] = None
    ) -> List[Profile]:
        self._check()
        async with self._lock:
            return [
                profile.with_updates()
                for profile in self._profiles.values()
                if profile.category is category
                and profile.id != exclude_id
                and (gender is None or profile.gender is gender)
            ]

    async def commit_match(self, initiator_id: int, partner_id: int) -> int:
        self._check()
        async with self._lock:
            initiator = self._profiles.get(initiator_id)
            if initiator is None or initiator.credits < 1:
                raise PreconditionError(
                    "No credits left",
                    user_id=initiator_id,
                    partner_id=partner_id
                )

            remaining = initiator.credits - 1
            self._profiles[initiator_id] = initiator.with_updates(credits=remaining)
            self._pairs.add((initiator_id, partner_id))
            self._pairs.add((partner_id, initiator_id))

        logger.info(f"🤝 Match committed: {initiator_id} ↔ {partner_id}, credits left {remaining}")
        return remaining

    async def redeem_grant(self, user_id: int, token: str) -> GrantRedemption:
        self._check()
        async with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                raise PreconditionError("Profile not found", user_id=user_id, token=token)

            if (user_id, token) in self._grants:
                return GrantRedemption(already_redeemed=True, credits=profile.credits)

            self._grants.add((user_id, token))
            credits = profile.credits + 1
            self._profiles[user_id] = profile.with_updates(credits=credits)

        logger.info(f"➕ Grant redeemed by {user_id}, credits {credits}")
        return GrantRedemption(already_redeemed=False, credits=credits)

    async def seed(self, profiles: Iterable[Profile]) -> int:
        self._check()
        added = 0
        async with self._lock:
            for profile in profiles:
                if profile.id not in self._profiles:
                    self._profiles[profile.id] = profile.with_updates()
                    added += 1

        logger.info(f"🌱 Seeded {added} placeholder profiles")
        return added
