"""
Match Engine - подбор партнёра и списание встречи

Алгоритм:
1. Кандидаты той же категории, кроме инициатора (для love - только противоположный пол)
2. Исключить тех, с кем инициатор уже встречался
3. Пусто до исключения → NO_CANDIDATES, пусто после → ALREADY_MET_EVERYONE
4. Случайный выбор из оставшихся
5. Атомарный commit: -1 встреча + пара в обе стороны
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..core.error_handling import PreconditionError
from ..core.logging import LoggerMixin
from ..database.profile_store import ProfileStore
from ..models import Category, Profile


class MatchStatus(Enum):
    MATCHED = "matched"
    NO_CANDIDATES = "no_candidates"
    ALREADY_MET_EVERYONE = "already_met_everyone"
    NO_CREDITS = "no_credits"
    MISSING_ATTRIBUTE = "missing_attribute"
    NOT_REGISTERED = "not_registered"


@dataclass(frozen=True)
class MatchResult:
    status: MatchStatus
    category: Category
    initiator: Optional[Profile] = None
    partner: Optional[Profile] = None
    remaining_credits: Optional[int] = None
    missing_attribute: Optional[str] = None

    @property
    def committed(self) -> bool:
        """True только если пара и списание сохранены"""
        return self.status is MatchStatus.MATCHED


class MatchEngine(LoggerMixin):
    """Candidate selection and the atomic pairing transaction"""

    def __init__(self, store: ProfileStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.Random()

    async def request_match(self, initiator_id: int, category: Category) -> MatchResult:
        """
        Подобрать и закоммитить партнёра.

        Нарушенные предусловия не бросают исключений, а возвращают статус.
        StorageUnavailable пробрасывается вызывающему.
        """
        initiator = await self.store.get(initiator_id)

        if initiator is None:
            return MatchResult(MatchStatus.NOT_REGISTERED, category)

        if not initiator.can_initiate:
            return MatchResult(
                MatchStatus.NO_CREDITS,
                category,
                initiator=initiator,
                remaining_credits=initiator.credits
            )

        if not initiator.has_attribute_for(category):
            self.logger.warning(
                f"Match requested without {category.required_attribute}",
                extra={'user_id': initiator_id, 'category': category.value}
            )
            return MatchResult(
                MatchStatus.MISSING_ATTRIBUTE,
                category,
                initiator=initiator,
                remaining_credits=initiator.credits,
                missing_attribute=category.required_attribute
            )

        target_gender = initiator.gender.opposite if category is Category.LOVE else None
        pool = await self.store.find_candidates(category, initiator_id, gender=target_gender)

        if not pool:
            self.log_metric("match_empty_pool", 1, category=category.value)
            return MatchResult(
                MatchStatus.NO_CANDIDATES,
                category,
                initiator=initiator,
                remaining_credits=initiator.credits
            )

        met = await self.store.met_partner_ids(initiator_id, (c.id for c in pool))
        fresh = [c for c in pool if c.id not in met]

        if not fresh:
            return MatchResult(
                MatchStatus.ALREADY_MET_EVERYONE,
                category,
                initiator=initiator,
                remaining_credits=initiator.credits
            )

        partner = self.rng.choice(fresh)

        try:
            remaining = await self.store.commit_match(initiator_id, partner.id)
        except PreconditionError:
            # Встречу списали параллельным запросом между чтением и commit
            return MatchResult(
                MatchStatus.NO_CREDITS,
                category,
                initiator=initiator,
                remaining_credits=0
            )

        self.log_metric(
            "match_committed", 1,
            category=category.value,
            pool_size=len(pool),
            fresh_size=len(fresh)
        )
        self.log_user_action("match", initiator_id, partner_id=partner.id, category=category.value)

        return MatchResult(
            MatchStatus.MATCHED,
            category,
            initiator=initiator.with_updates(credits=remaining),
            partner=partner,
            remaining_credits=remaining
        )
