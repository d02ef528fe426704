"""
Conversation State Machine - пошаговые диалоги пользователя

Регистрация:
    IDLE → COLLECTING_NAME → COLLECTING_BIO → CHOOSING_CATEGORY
         → {COLLECTING_CREATIVITY | COLLECTING_GENDER | complete} → IDLE

Подготовка к встрече:
    IDLE → CHOOSING_MEET_CATEGORY
         → {COLLECTING_MEET_CREATIVITY | COLLECTING_MEET_GENDER | complete} → IDLE

Машина ничего не пишет в хранилище. На терминальном шаге она возвращает
Completion, а состояние удаляется только вызовом complete() после того,
как контроллер успешно сохранил результат.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from ..core.error_handling import PreconditionError, ValidationError
from ..models import Category, Gender, Profile

logger = logging.getLogger(__name__)


class Step(Enum):
    IDLE = "idle"
    COLLECTING_NAME = "collecting_name"
    COLLECTING_BIO = "collecting_bio"
    CHOOSING_CATEGORY = "choosing_category"
    COLLECTING_CREATIVITY = "collecting_creativity"
    COLLECTING_GENDER = "collecting_gender"
    CHOOSING_MEET_CATEGORY = "choosing_meet_category"
    COLLECTING_MEET_CREATIVITY = "collecting_meet_creativity"
    COLLECTING_MEET_GENDER = "collecting_meet_gender"

    @property
    def is_registration(self) -> bool:
        return self in _REGISTRATION_STEPS

    @property
    def takes_free_text(self) -> bool:
        """Шаг ждёт произвольный текст, а не выбор из набора"""
        return self in _FREE_TEXT_STEPS


_REGISTRATION_STEPS = {
    Step.COLLECTING_NAME,
    Step.COLLECTING_BIO,
    Step.CHOOSING_CATEGORY,
    Step.COLLECTING_CREATIVITY,
    Step.COLLECTING_GENDER,
}

_FREE_TEXT_STEPS = {
    Step.COLLECTING_NAME,
    Step.COLLECTING_BIO,
    Step.COLLECTING_CREATIVITY,
    Step.COLLECTING_MEET_CREATIVITY,
}

# Шаг сбора атрибута для категории: (регистрация, перед встречей)
_ATTRIBUTE_STEPS = {
    Category.COLLAB: (Step.COLLECTING_CREATIVITY, Step.COLLECTING_MEET_CREATIVITY),
    Category.LOVE: (Step.COLLECTING_GENDER, Step.COLLECTING_MEET_GENDER),
}


@dataclass
class ConversationState:
    """Черновик диалога одного пользователя"""
    step: Step = Step.IDLE
    pending_category: Optional[Category] = None
    collected_name: Optional[str] = None
    collected_bio: Optional[str] = None


class TransitionKind(Enum):
    REJECTED = "rejected"
    ADVANCED = "advanced"
    COMPLETED = "completed"


class CompletionAction(Enum):
    REGISTER = "register"
    MATCH = "match"


@dataclass(frozen=True)
class Completion:
    """Что нужно сохранить/выполнить по завершении диалога"""
    action: CompletionAction
    category: Category
    name: Optional[str] = None
    bio: Optional[str] = None
    creativity: Optional[str] = None
    gender: Optional[Gender] = None


@dataclass(frozen=True)
class Transition:
    kind: TransitionKind
    step: Step
    outcome: Optional[Completion] = None
    error: Optional[ValidationError] = None

    @property
    def rejected(self) -> bool:
        return self.kind is TransitionKind.REJECTED

    @property
    def completed(self) -> bool:
        return self.kind is TransitionKind.COMPLETED


class ConversationStateMachine:
    """Keyed store of per-user dialogue state with exhaustive step handling"""

    def __init__(self):
        self._states: Dict[int, ConversationState] = {}

    def get(self, user_id: int) -> ConversationState:
        return self._states.get(user_id) or ConversationState()

    def is_active(self, user_id: int) -> bool:
        return user_id in self._states

    def begin_registration(self, user_id: int) -> ConversationState:
        """Новый черновик регистрации. Очистку durable-данных делает контроллер."""
        state = ConversationState(step=Step.COLLECTING_NAME)
        self._states[user_id] = state
        logger.info(f"📝 Registration started for user {user_id}")
        return state

    def begin_meet_request(self, user_id: int) -> ConversationState:
        state = ConversationState(step=Step.CHOOSING_MEET_CATEGORY)
        self._states[user_id] = state
        return state

    def begin_meet_attribute(self, user_id: int, category: Category) -> ConversationState:
        """Сразу к сбору недостающего атрибута перед встречей"""
        if category not in _ATTRIBUTE_STEPS:
            raise PreconditionError(
                f"Category {category.value} has no attribute to collect",
                user_id=user_id
            )
        state = ConversationState(
            step=_ATTRIBUTE_STEPS[category][1],
            pending_category=category
        )
        self._states[user_id] = state
        return state

    def complete(self, user_id: int):
        self._states.pop(user_id, None)

    def cancel(self, user_id: int):
        if self._states.pop(user_id, None) is not None:
            logger.info(f"🛑 Dialogue cancelled for user {user_id}")

    def feed(self, user_id: int, value: str, profile: Optional[Profile] = None) -> Transition:
        """
        Подать один ход пользователя в текущий шаг.

        Args:
            user_id: Пользователь с активным диалогом
            value: Текст или метка кнопки
            profile: Сохранённый профиль (нужен на CHOOSING_MEET_CATEGORY)

        Raises:
            PreconditionError: у пользователя нет активного диалога
        """
        state = self._states.get(user_id)
        if state is None:
            raise PreconditionError("No active dialogue", user_id=user_id)

        handler = {
            Step.COLLECTING_NAME: self._on_name,
            Step.COLLECTING_BIO: self._on_bio,
            Step.CHOOSING_CATEGORY: self._on_category,
            Step.COLLECTING_CREATIVITY: self._on_creativity,
            Step.COLLECTING_GENDER: self._on_gender,
            Step.CHOOSING_MEET_CATEGORY: self._on_meet_category,
            Step.COLLECTING_MEET_CREATIVITY: self._on_meet_creativity,
            Step.COLLECTING_MEET_GENDER: self._on_meet_gender,
        }.get(state.step)

        if handler is None:
            raise PreconditionError(f"Step {state.step.value} accepts no input", user_id=user_id)

        text = (value or "").strip()
        transition = handler(user_id, state, text, profile)

        logger.debug(
            f"🔀 {user_id}: {transition.kind.value} at {transition.step.value}",
            extra={'user_id': user_id, 'step': transition.step.value}
        )
        return transition

    # Text steps

    def _on_name(self, user_id, state, text, profile) -> Transition:
        if not text:
            return self._reject(user_id, state, "name")
        state.collected_name = text
        return self._advance(state, Step.COLLECTING_BIO)

    def _on_bio(self, user_id, state, text, profile) -> Transition:
        if not text:
            return self._reject(user_id, state, "bio")
        state.collected_bio = text
        return self._advance(state, Step.CHOOSING_CATEGORY)

    def _on_creativity(self, user_id, state, text, profile) -> Transition:
        if not text:
            return self._reject(user_id, state, "creativity")
        return self._finish_registration(state, creativity=text)

    def _on_meet_creativity(self, user_id, state, text, profile) -> Transition:
        if not text:
            return self._reject(user_id, state, "creativity")
        return self._finish_match(state, Category.COLLAB, creativity=text)

    # Enum steps

    def _on_category(self, user_id, state, text, profile) -> Transition:
        category = Category.parse(text)
        if category is None:
            return self._reject(user_id, state, "category", value=text)

        if category not in _ATTRIBUTE_STEPS:
            return self._finish_registration(state, category=category)

        state.pending_category = category
        return self._advance(state, _ATTRIBUTE_STEPS[category][0])

    def _on_gender(self, user_id, state, text, profile) -> Transition:
        gender = Gender.parse(text)
        if gender is None:
            return self._reject(user_id, state, "gender", value=text)
        return self._finish_registration(state, gender=gender)

    def _on_meet_category(self, user_id, state, text, profile) -> Transition:
        category = Category.parse(text)
        if category is None:
            return self._reject(user_id, state, "category", value=text)

        if profile is not None and not profile.has_attribute_for(category):
            state.pending_category = category
            return self._advance(state, _ATTRIBUTE_STEPS[category][1])

        return Transition(
            TransitionKind.COMPLETED,
            state.step,
            outcome=Completion(CompletionAction.MATCH, category)
        )

    def _on_meet_gender(self, user_id, state, text, profile) -> Transition:
        gender = Gender.parse(text)
        if gender is None:
            return self._reject(user_id, state, "gender", value=text)
        return self._finish_match(state, Category.LOVE, gender=gender)

    # Helpers

    @staticmethod
    def _advance(state: ConversationState, step: Step) -> Transition:
        state.step = step
        return Transition(TransitionKind.ADVANCED, step)

    @staticmethod
    def _reject(user_id: int, state: ConversationState, field: str, value: str = "") -> Transition:
        error = ValidationError(
            f"Invalid {field}",
            user_id=user_id,
            field=field,
            step=state.step.value,
            value=value
        )
        return Transition(TransitionKind.REJECTED, state.step, error=error)

    @staticmethod
    def _finish_registration(state: ConversationState, **fields) -> Transition:
        category = fields.pop("category", None) or state.pending_category
        outcome = Completion(
            CompletionAction.REGISTER,
            category,
            name=state.collected_name,
            bio=state.collected_bio,
            **fields
        )
        return Transition(TransitionKind.COMPLETED, state.step, outcome=outcome)

    @staticmethod
    def _finish_match(state: ConversationState, category: Category, **fields) -> Transition:
        outcome = Completion(CompletionAction.MATCH, category, **fields)
        return Transition(TransitionKind.COMPLETED, state.step, outcome=outcome)
