"""Profile domain types: categories, genders, profiles and grant redemptions."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional


def _normalize(value: str) -> str:
    """Lower-case the label and drop leading emoji/punctuation of a button text."""
    text = value.strip().lower()
    # "🤝 дружба" -> "дружба"
    if " " in text and not text.split(" ", 1)[0].isalpha():
        text = text.split(" ", 1)[1].strip()
    return text


class Category(Enum):
    """Category of interest."""
    FRIENDSHIP = "friendship"
    COLLAB = "collab"
    LOVE = "love"

    @property
    def required_attribute(self) -> Optional[str]:
        """Profile field that must be set before matching in this category."""
        return _REQUIRED_ATTRIBUTE.get(self)

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Category"]:
        """Parse a canonical label or a Russian button label, case-insensitively."""
        if value is None:
            return None
        return _CATEGORY_ALIASES.get(_normalize(value))


class Gender(Enum):
    """Binary gender used by the love category filter."""
    MALE = "male"
    FEMALE = "female"

    @property
    def opposite(self) -> "Gender":
        return Gender.FEMALE if self is Gender.MALE else Gender.MALE

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Gender"]:
        if value is None:
            return None
        return _GENDER_ALIASES.get(_normalize(value))


_REQUIRED_ATTRIBUTE = {
    Category.COLLAB: "creativity",
    Category.LOVE: "gender",
}

_CATEGORY_ALIASES = {
    "friendship": Category.FRIENDSHIP,
    "дружба": Category.FRIENDSHIP,
    "collab": Category.COLLAB,
    "сотворчество": Category.COLLAB,
    "love": Category.LOVE,
    "отношения": Category.LOVE,
}

_GENDER_ALIASES = {
    "male": Gender.MALE,
    "мужской": Gender.MALE,
    "female": Gender.FEMALE,
    "женский": Gender.FEMALE,
}


@dataclass
class Profile:
    """Registered user profile."""

    id: int
    name: str
    bio: str
    contact: Optional[str] = None
    category: Optional[Category] = None
    credits: int = 0
    creativity: Optional[str] = None
    gender: Optional[Gender] = None

    def has_attribute_for(self, category: Category) -> bool:
        """Check that the category-specific attribute is populated."""
        attribute = category.required_attribute
        if attribute is None:
            return True
        return bool(getattr(self, attribute))

    @property
    def can_initiate(self) -> bool:
        return self.credits >= 1

    def with_updates(self, **fields) -> "Profile":
        return replace(self, **fields)

    def to_record(self) -> Dict[str, Any]:
        """Flat dict with storage-friendly values (enums as strings)."""
        return {
            "user_id": self.id,
            "name": self.name,
            "bio": self.bio,
            "contact": self.contact or "",
            "category": self.category.value if self.category else None,
            "credits": self.credits,
            "creativity": self.creativity,
            "gender": self.gender.value if self.gender else None,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Profile":
        category = record.get("category")
        gender = record.get("gender")
        return cls(
            id=record["user_id"],
            name=record["name"],
            bio=record["bio"],
            contact=record.get("contact") or None,
            category=Category(category) if category else None,
            credits=record.get("credits") or 0,
            creativity=record.get("creativity"),
            gender=Gender(gender) if gender else None,
        )


@dataclass(frozen=True)
class GrantRedemption:
    """Outcome of redeeming a grant."""
    already_redeemed: bool
    credits: int
