"""Placeholder profiles seeded at startup so early users never see an empty pool."""

from ..models import Category, Gender, Profile

# Отрицательные id недостижимы в Telegram: уведомления им не отправляются
PLACEHOLDER_PROFILES = [
    Profile(
        id=-1,
        name="Алиса",
        bio="Люблю гулять",
        contact="@alice_bot",
        category=Category.FRIENDSHIP,
    ),
    Profile(
        id=-2,
        name="Борис",
        bio="Пишу стихи каждый",
        contact="@boris_creative",
        category=Category.COLLAB,
        creativity="пишу стихи каждый",
    ),
    Profile(
        id=-3,
        name="Вера",
        bio="Танцую по выходным",
        contact="@vera_dance",
        category=Category.LOVE,
        gender=Gender.FEMALE,
    ),
    Profile(
        id=-4,
        name="Глеб",
        bio="Варю кофе и катаюсь",
        contact="@gleb_coffee",
        category=Category.LOVE,
        gender=Gender.MALE,
    ),
]


def is_placeholder(user_id: int) -> bool:
    return user_id < 0
