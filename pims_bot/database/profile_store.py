"""
Profile Store - профили, история пар и одноразовые гранты встреч

Три отношения:
- profiles        (user_id PK)
- pair_history    (user_id, partner_id) UNIQUE, пишется симметрично
- meeting_grants  (user_id, token) UNIQUE

ProfileStore - единственный писатель durable-данных. Все операции,
затрагивающие несколько строк, выполняются атомарно.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Set

from ..core.error_handling import PreconditionError
from ..models import Category, Gender, GrantRedemption, Profile
from .service import DatabaseService

logger = logging.getLogger(__name__)


class ProfileStore(ABC):
    """Контракт хранилища профилей"""

    @property
    @abstractmethod
    def available(self) -> bool:
        """False = degraded mode, все операции бросают StorageUnavailable"""

    @abstractmethod
    async def get(self, user_id: int) -> Optional[Profile]:
        pass

    @abstractmethod
    async def upsert(self, profile: Profile) -> None:
        """Полная замена профиля по ключу"""

    @abstractmethod
    async def set_attribute(
        self,
        user_id: int,
        creativity: Optional[str] = None,
        gender: Optional[Gender] = None
    ) -> None:
        """Точечное обновление category-specific атрибута"""

    @abstractmethod
    async def delete_all(self, user_id: int) -> None:
        """Удалить профиль, историю пар (в обе стороны) и гранты"""

    @abstractmethod
    async def adjust_credits(self, user_id: int, delta: int) -> Optional[int]:
        """Изменить баланс встреч. None если профиля нет."""

    @abstractmethod
    async def record_pair(self, a: int, b: int) -> None:
        """Идемпотентная симметричная запись пары"""

    @abstractmethod
    async def has_met(self, a: int, b: int) -> bool:
        pass

    @abstractmethod
    async def met_partner_ids(self, user_id: int, candidate_ids: Iterable[int]) -> Set[int]:
        """Подмножество candidate_ids, с которыми user_id уже встречался"""

    @abstractmethod
    async def find_candidates(
        self,
        category: Category,
        exclude_id: int,
        gender: Optional[Gender] = None
    ) -> List[Profile]:
        pass

    @abstractmethod
    async def commit_match(self, initiator_id: int, partner_id: int) -> int:
        """
        Атомарно: списать 1 встречу у инициатора и записать пару в обе стороны.

        Returns:
            Остаток встреч инициатора

        Raises:
            PreconditionError: у инициатора нет встреч (ничего не записано)
        """

    @abstractmethod
    async def redeem_grant(self, user_id: int, token: str) -> GrantRedemption:
        """Идемпотентное погашение гранта: +1 встреча только в первый раз"""

    @abstractmethod
    async def seed(self, profiles: Iterable[Profile]) -> int:
        """Insert-or-ignore профилей. Returns количество добавленных."""


class PostgresProfileStore(ProfileStore):
    """ProfileStore поверх asyncpg"""

    def __init__(self, db_service: DatabaseService):
        self.db = db_service

    @property
    def available(self) -> bool:
        return self.db.available

    async def create_tables(self):
        """Создать таблицы (идемпотентно)"""

        profiles_sql = """
        CREATE TABLE IF NOT EXISTS profiles (
            user_id BIGINT PRIMARY KEY,
            name TEXT NOT NULL,
            bio TEXT NOT NULL,
            contact TEXT NOT NULL DEFAULT '',
            category VARCHAR(20),
            credits INTEGER NOT NULL DEFAULT 0 CHECK (credits >= 0),
            creativity TEXT,
            gender VARCHAR(10),
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
        """

        pairs_sql = """
        CREATE TABLE IF NOT EXISTS pair_history (
            user_id BIGINT NOT NULL,
            partner_id BIGINT NOT NULL,
            matched_at TIMESTAMP DEFAULT NOW(),
            UNIQUE (user_id, partner_id)
        )
        """

        grants_sql = """
        CREATE TABLE IF NOT EXISTS meeting_grants (
            user_id BIGINT NOT NULL,
            token TEXT NOT NULL,
            redeemed_at TIMESTAMP DEFAULT NOW(),
            UNIQUE (user_id, token)
        )
        """

        index_sql = """
        CREATE INDEX IF NOT EXISTS idx_profiles_category ON profiles (category, gender)
        """

        async with self.db.transaction() as conn:
            await conn.execute(profiles_sql)
            await conn.execute(pairs_sql)
            await conn.execute(grants_sql)
            await conn.execute(index_sql)

        logger.info("✅ Tables profiles/pair_history/meeting_grants created/verified")

    async def get(self, user_id: int) -> Optional[Profile]:
        row = await self.db.fetch_one(
            """
            SELECT user_id, name, bio, contact, category, credits, creativity, gender
            FROM profiles
            WHERE user_id = $1
            """,
            user_id
        )

        if not row:
            logger.debug(f"👤 Profile not found: {user_id}")
            return None

        return Profile.from_record(dict(row))

    async def upsert(self, profile: Profile) -> None:
        record = profile.to_record()

        await self.db.execute(
            """
            INSERT INTO profiles (user_id, name, bio, contact, category, credits, creativity, gender)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (user_id) DO UPDATE
            SET name = EXCLUDED.name,
                bio = EXCLUDED.bio,
                contact = EXCLUDED.contact,
                category = EXCLUDED.category,
                credits = EXCLUDED.credits,
                creativity = EXCLUDED.creativity,
                gender = EXCLUDED.gender,
                updated_at = NOW()
            """,
            record["user_id"],
            record["name"],
            record["bio"],
            record["contact"],
            record["category"],
            record["credits"],
            record["creativity"],
            record["gender"]
        )

        logger.info(f"✅ Profile saved: {profile.id}")

    async def set_attribute(
        self,
        user_id: int,
        creativity: Optional[str] = None,
        gender: Optional[Gender] = None
    ) -> None:
        if creativity is not None:
            await self.db.execute(
                "UPDATE profiles SET creativity = $2, updated_at = NOW() WHERE user_id = $1",
                user_id, creativity
            )
        if gender is not None:
            await self.db.execute(
                "UPDATE profiles SET gender = $2, updated_at = NOW() WHERE user_id = $1",
                user_id, gender.value
            )

    async def delete_all(self, user_id: int) -> None:
        async with self.db.transaction() as conn:
            await conn.execute("DELETE FROM profiles WHERE user_id = $1", user_id)
            await conn.execute("DELETE FROM meeting_grants WHERE user_id = $1", user_id)
            await conn.execute(
                "DELETE FROM pair_history WHERE user_id = $1 OR partner_id = $1",
                user_id
            )

        logger.info(f"🧹 All data removed for user {user_id}")

    async def adjust_credits(self, user_id: int, delta: int) -> Optional[int]:
        return await self.db.fetch_value(
            """
            UPDATE profiles
            SET credits = GREATEST(credits + $2, 0), updated_at = NOW()
            WHERE user_id = $1
            RETURNING credits
            """,
            user_id, delta
        )

    async def record_pair(self, a: int, b: int) -> None:
        async with self.db.transaction() as conn:
            await self._insert_pair(conn, a, b)

    async def _insert_pair(self, conn, a: int, b: int):
        insert_sql = """
        INSERT INTO pair_history (user_id, partner_id)
        VALUES ($1, $2)
        ON CONFLICT (user_id, partner_id) DO NOTHING
        """
        await conn.execute(insert_sql, a, b)
        await conn.execute(insert_sql, b, a)

    async def has_met(self, a: int, b: int) -> bool:
        value = await self.db.fetch_value(
            "SELECT 1 FROM pair_history WHERE user_id = $1 AND partner_id = $2",
            a, b
        )
        return value == 1

    async def met_partner_ids(self, user_id: int, candidate_ids: Iterable[int]) -> Set[int]:
        ids = list(candidate_ids)
        if not ids:
            return set()

        rows = await self.db.fetch_all(
            """
            SELECT partner_id FROM pair_history
            WHERE user_id = $1 AND partner_id = ANY($2::bigint[])
            """,
            user_id, ids
        )
        return {row["partner_id"] for row in rows}

    async def find_candidates(
        self,
        category: Category,
        exclude_id: int,
        gender: Optional[Gender] = None
    ) -> List[Profile]:
        query = """
        SELECT user_id, name, bio, contact, category, credits, creativity, gender
        FROM profiles
        WHERE category = $1 AND user_id <> $2
        """
        args = [category.value, exclude_id]

        if gender is not None:
            query += " AND gender = $3"
            args.append(gender.value)

        rows = await self.db.fetch_all(query, *args)
        return [Profile.from_record(dict(row)) for row in rows]

    async def commit_match(self, initiator_id: int, partner_id: int) -> int:
        async with self.db.transaction() as conn:
            remaining = await conn.fetchval(
                """
                UPDATE profiles
                SET credits = credits - 1, updated_at = NOW()
                WHERE user_id = $1 AND credits >= 1
                RETURNING credits
                """,
                initiator_id
            )

            if remaining is None:
                # Исключение откатывает транзакцию
                raise PreconditionError(
                    "No credits left",
                    user_id=initiator_id,
                    partner_id=partner_id
                )

            await self._insert_pair(conn, initiator_id, partner_id)

        logger.info(f"🤝 Match committed: {initiator_id} ↔ {partner_id}, credits left {remaining}")
        return remaining

    async def redeem_grant(self, user_id: int, token: str) -> GrantRedemption:
        async with self.db.transaction() as conn:
            status = await conn.execute(
                """
                INSERT INTO meeting_grants (user_id, token)
                VALUES ($1, $2)
                ON CONFLICT (user_id, token) DO NOTHING
                """,
                user_id, token
            )

            inserted = status.split()[-1] == "1"

            if inserted:
                credits = await conn.fetchval(
                    """
                    UPDATE profiles SET credits = credits + 1, updated_at = NOW()
                    WHERE user_id = $1
                    RETURNING credits
                    """,
                    user_id
                )
            else:
                credits = await conn.fetchval(
                    "SELECT credits FROM profiles WHERE user_id = $1",
                    user_id
                )

            if credits is None:
                raise PreconditionError("Profile not found", user_id=user_id, token=token)

        if inserted:
            logger.info(f"➕ Grant redeemed by {user_id}, credits {credits}")
        return GrantRedemption(already_redeemed=not inserted, credits=credits)

    async def seed(self, profiles: Iterable[Profile]) -> int:
        added = 0
        async with self.db.transaction() as conn:
            for profile in profiles:
                record = profile.to_record()
                status = await conn.execute(
                    """
                    INSERT INTO profiles (user_id, name, bio, contact, category, credits, creativity, gender)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    ON CONFLICT (user_id) DO NOTHING
                    """,
                    record["user_id"],
                    record["name"],
                    record["bio"],
                    record["contact"],
                    record["category"],
                    record["credits"],
                    record["creativity"],
                    record["gender"]
                )
                if status.split()[-1] == "1":
                    added += 1

        logger.info(f"🌱 Seeded {added} placeholder profiles")
        return added
