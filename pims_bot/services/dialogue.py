"""
Dialogue Controller - маршрутизация событий пользователя

Событие → (активный диалог? → ConversationStateMachine) иначе команда
→ ProfileStore / MatchEngine → список ответов пользователю.

Ходы одного пользователя обрабатываются строго по одному (keyed asyncio.Lock),
ходы разных пользователей идут параллельно.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, Union

from ..core.error_handling import (
    ErrorCode,
    NotificationDeliveryFailure,
    StorageUnavailable,
    error_tracker,
)
from ..core.logging import LoggerMixin
from ..database.profile_store import ProfileStore
from ..database.seed import is_placeholder
from ..messages import MessageService
from ..models import Category, Profile
from .conversation import (
    Completion,
    CompletionAction,
    ConversationStateMachine,
    Step,
    Transition,
)
from .match_engine import MatchEngine, MatchResult, MatchStatus

MENU_REQUEST_MEETING = "request-meeting"

COMMAND_MEET = "meet"
COMMAND_COUNT = "count"
COMMAND_RESET = "reset"
COMMAND_GRANT = "grant-credits"


# Inbound events

@dataclass(frozen=True)
class Start:
    user_id: int
    grant_token: Optional[str] = None
    contact: Optional[str] = None


@dataclass(frozen=True)
class FreeText:
    user_id: int
    text: str
    contact: Optional[str] = None


@dataclass(frozen=True)
class MenuChoice:
    """choice: friendship | collab | love | male | female | request-meeting

    text - исходный текст кнопки, уходит в диалог на шагах свободного ввода
    """
    user_id: int
    choice: str
    contact: Optional[str] = None
    text: Optional[str] = None


@dataclass(frozen=True)
class Command:
    user_id: int
    name: str
    args: Tuple[str, ...] = ()
    contact: Optional[str] = None


Event = Union[Start, FreeText, MenuChoice, Command]


# Outbound replies

class Keyboard(Enum):
    NONE = "none"
    REMOVE = "remove"
    MEET = "meet"
    CATEGORIES = "categories"
    GENDERS = "genders"


@dataclass(frozen=True)
class Reply:
    text: str
    keyboard: Keyboard = Keyboard.NONE


class Notifier(Protocol):
    async def notify(self, user_id: int, text: str) -> None:
        """Raises NotificationDeliveryFailure"""


# step → (категория шаблона, ключ вопроса, клавиатура)
_PROMPTS = {
    Step.COLLECTING_NAME: ("registration", "ask_name", Keyboard.REMOVE),
    Step.COLLECTING_BIO: ("registration", "ask_bio", Keyboard.REMOVE),
    Step.CHOOSING_CATEGORY: ("registration", "ask_category", Keyboard.CATEGORIES),
    Step.COLLECTING_CREATIVITY: ("registration", "ask_creativity", Keyboard.REMOVE),
    Step.COLLECTING_GENDER: ("registration", "ask_gender", Keyboard.GENDERS),
    Step.CHOOSING_MEET_CATEGORY: ("meeting", "choose_category", Keyboard.CATEGORIES),
    Step.COLLECTING_MEET_CREATIVITY: ("registration", "ask_creativity", Keyboard.REMOVE),
    Step.COLLECTING_MEET_GENDER: ("registration", "ask_gender", Keyboard.GENDERS),
}


class DialogueController(LoggerMixin):
    """Thin orchestration of one user turn"""

    def __init__(
        self,
        store: ProfileStore,
        engine: MatchEngine,
        machine: ConversationStateMachine,
        messages: MessageService,
        notifier: Notifier,
        admin_ids: Optional[Iterable[int]] = None
    ):
        self.store = store
        self.engine = engine
        self.machine = machine
        self.messages = messages
        self.notifier = notifier
        self.admin_ids = set(admin_ids or ())
        # lock пользователя живёт, пока у него есть ходы в работе или в очереди
        self._locks: Dict[int, asyncio.Lock] = {}
        self._pending: Dict[int, int] = {}

    def current_step(self, user_id: int) -> Step:
        return self.machine.get(user_id).step

    async def handle(self, event: Event) -> List[Reply]:
        """Обработать одно событие. StorageUnavailable превращается в ответ."""
        user_id = event.user_id
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._pending[user_id] = self._pending.get(user_id, 0) + 1
        try:
            async with lock:
                try:
                    return await self._dispatch(event)
                except StorageUnavailable as e:
                    error_tracker.track_error(
                        e, e.error_code, user_id,
                        context={'event': type(event).__name__},
                        severity="WARNING"
                    )
                    return [self._reply('storage_unavailable', 'general', Keyboard.MEET)]
        finally:
            self._release(user_id)

    def _release(self, user_id: int):
        """Убрать lock пользователя, если за ним никто не стоит"""
        self._pending[user_id] -= 1
        if not self._pending[user_id]:
            del self._pending[user_id]
            del self._locks[user_id]

    async def _dispatch(self, event: Event) -> List[Reply]:
        if isinstance(event, Start):
            return await self._on_start(event)
        if isinstance(event, Command):
            return await self._on_command(event)
        if isinstance(event, MenuChoice):
            return await self._on_menu_choice(event)
        if isinstance(event, FreeText):
            return await self._on_free_text(event)
        raise TypeError(f"Unsupported event: {event!r}")

    # Events

    async def _on_start(self, event: Start) -> List[Reply]:
        user_id = event.user_id
        profile = await self.store.get(user_id)

        if profile is None:
            return await self.begin_registration(user_id)

        self.machine.cancel(user_id)

        if event.grant_token:
            redemption = await self.store.redeem_grant(user_id, event.grant_token)
            key = 'grant_already' if redemption.already_redeemed else 'grant_credited'
            self.log_user_action("redeem_grant", user_id,
                                 token=event.grant_token,
                                 already=redemption.already_redeemed)
            return [self._reply(key, 'meeting', Keyboard.MEET)]

        return [self._reply('menu', 'general', Keyboard.MEET)]

    async def _on_command(self, event: Command) -> List[Reply]:
        name = event.name.lower()

        if name == COMMAND_RESET:
            return await self._reset(event.user_id)
        if name == COMMAND_MEET:
            return await self._begin_meet(event.user_id)
        if name == COMMAND_COUNT:
            return await self._count(event.user_id)
        if name == COMMAND_GRANT:
            return await self._grant_credits(event.user_id, event.args)

        self.logger.debug(f"Unknown command {event.name!r} from {event.user_id}")
        return [self._reply('hint', 'general', Keyboard.MEET)]

    async def _on_menu_choice(self, event: MenuChoice) -> List[Reply]:
        user_id = event.user_id
        choice = event.choice

        if choice == MENU_REQUEST_MEETING:
            return await self._begin_meet(user_id)

        if self.machine.is_active(user_id):
            if self.current_step(user_id).takes_free_text and event.text:
                # Текст, совпавший с кнопкой, на шаге свободного ввода - это ответ как есть
                return await self._feed(user_id, event.text, event.contact)
            return await self._feed(user_id, choice, event.contact)

        if Category.parse(choice) is not None:
            # Кнопка категории вне диалога = выбор категории встречи
            replies = await self._begin_meet(user_id)
            if self.current_step(user_id) is not Step.CHOOSING_MEET_CATEGORY:
                return replies
            return await self._feed(user_id, choice, event.contact)

        return [self._reply('hint', 'general', Keyboard.MEET)]

    async def _on_free_text(self, event: FreeText) -> List[Reply]:
        if self.machine.is_active(event.user_id):
            return await self._feed(event.user_id, event.text, event.contact)
        return [self._reply('hint', 'general', Keyboard.MEET)]

    # Flows

    async def begin_registration(self, user_id: int) -> List[Reply]:
        """Деструктивный старт: профиль, пары и гранты удаляются"""
        await self.store.delete_all(user_id)
        self.machine.begin_registration(user_id)
        self.log_user_action("registration_started", user_id)
        return [
            self._reply('welcome', 'registration'),
            self._prompt(Step.COLLECTING_NAME),
        ]

    async def _begin_meet(self, user_id: int) -> List[Reply]:
        profile = await self.store.get(user_id)
        if profile is None:
            return await self.begin_registration(user_id)

        if not profile.can_initiate:
            self.machine.cancel(user_id)
            return [self._reply('no_credits', 'meeting', Keyboard.MEET)]

        self.machine.begin_meet_request(user_id)
        return [self._prompt(Step.CHOOSING_MEET_CATEGORY)]

    async def _count(self, user_id: int) -> List[Reply]:
        profile = await self.store.get(user_id)
        if profile is None:
            return await self.begin_registration(user_id)
        return [self._reply('count', 'meeting', Keyboard.MEET, credits=profile.credits)]

    async def _reset(self, user_id: int) -> List[Reply]:
        await self.store.delete_all(user_id)
        self.machine.cancel(user_id)
        self.log_user_action("reset", user_id)
        return [self._reply('reset_done', 'general', Keyboard.MEET)]

    async def _grant_credits(self, user_id: int, args: Tuple[str, ...]) -> List[Reply]:
        if self.admin_ids and user_id not in self.admin_ids:
            self.log_error(ErrorCode.USER_PERMISSION_ERROR.value, "grant-credits without permission", user_id)
            return [self._reply('grant_forbidden', 'meeting', Keyboard.MEET)]

        amount = parse_positive_int(args[0] if args else "")
        if amount is None:
            return [self._reply('grant_format', 'meeting')]

        if await self.store.get(user_id) is None:
            return await self.begin_registration(user_id)

        credits = await self.store.adjust_credits(user_id, amount)
        if credits is None:
            return await self.begin_registration(user_id)

        self.log_user_action("grant_credits", user_id, amount=amount, credits=credits)
        return [self._reply('credits_added', 'meeting', Keyboard.MEET, amount=amount, credits=credits)]

    async def _feed(self, user_id: int, value: str, contact: Optional[str]) -> List[Reply]:
        profile = None
        if self.current_step(user_id) is Step.CHOOSING_MEET_CATEGORY:
            profile = await self.store.get(user_id)
            if profile is None:
                return await self.begin_registration(user_id)

        transition = self.machine.feed(user_id, value, profile)

        if transition.rejected:
            return [self._rejection(transition)]

        if not transition.completed:
            return [self._prompt(transition.step)]

        outcome = transition.outcome
        if outcome.action is CompletionAction.REGISTER:
            return await self._complete_registration(user_id, outcome, contact)
        return await self._complete_match_request(user_id, outcome)

    async def _complete_registration(
        self,
        user_id: int,
        outcome: Completion,
        contact: Optional[str]
    ) -> List[Reply]:
        profile = Profile(
            id=user_id,
            name=outcome.name,
            bio=outcome.bio,
            contact=contact or None,
            category=outcome.category,
            credits=1,
            creativity=outcome.creativity,
            gender=outcome.gender
        )
        await self.store.upsert(profile)
        self.machine.complete(user_id)

        self.log_user_action("registration_completed", user_id, category=outcome.category.value)

        return [self._reply(
            'completed', 'registration', Keyboard.MEET,
            category_label=self._label(outcome.category.value),
            name=profile.name,
            bio=profile.bio,
            contact=profile.contact or "",
            creativity=profile.creativity,
            gender_label=self._label(profile.gender.value) if profile.gender else None
        )]

    async def _complete_match_request(self, user_id: int, outcome: Completion) -> List[Reply]:
        replies = []

        if outcome.creativity is not None:
            await self.store.set_attribute(user_id, creativity=outcome.creativity)
            replies.append(self._reply('creativity_saved', 'meeting', Keyboard.MEET))
        elif outcome.gender is not None:
            await self.store.set_attribute(user_id, gender=outcome.gender)
            replies.append(self._reply('gender_saved', 'meeting', Keyboard.MEET))

        self.machine.complete(user_id)
        replies.extend(await self._match(user_id, outcome.category))
        return replies

    async def _match(self, user_id: int, category: Category) -> List[Reply]:
        result = await self.engine.request_match(user_id, category)

        if result.status is MatchStatus.MATCHED:
            await self._notify_partner(result)
            return [self._reply(
                'partner_card', 'meeting', Keyboard.MEET,
                **self._card(result.partner, category)
            )]

        if result.status is MatchStatus.NOT_REGISTERED:
            return await self.begin_registration(user_id)

        if result.status is MatchStatus.MISSING_ATTRIBUTE:
            state = self.machine.begin_meet_attribute(user_id, category)
            return [self._prompt(state.step)]

        key = {
            MatchStatus.NO_CANDIDATES: 'no_candidates',
            MatchStatus.ALREADY_MET_EVERYONE: 'already_met_everyone',
            MatchStatus.NO_CREDITS: 'no_credits',
        }[result.status]
        return [self._reply(key, 'meeting', Keyboard.MEET)]

    async def _notify_partner(self, result: MatchResult):
        """
        Best-effort: матч уже закоммичен и не откатывается.

        Карточка инициатора показывает атрибут категории, в которой состоялся матч.
        Placeholder профили недостижимы, им ничего не отправляется.
        """
        if is_placeholder(result.partner.id):
            self.logger.debug(f"📭 Partner {result.partner.id} is a placeholder, notification skipped")
            return

        text = self.messages.get_message(
            'new_match', 'meeting',
            **self._card(result.initiator, result.category)
        )
        try:
            await self.notifier.notify(result.partner.id, text)
        except NotificationDeliveryFailure as e:
            error_tracker.track_error(
                e, e.error_code, result.partner.id,
                context={'initiator_id': result.initiator.id},
                severity="WARNING"
            )

    # Rendering

    def _card(self, profile: Profile, category: Category) -> dict:
        gender_label = None
        if category is Category.LOVE and profile.gender:
            gender_label = self._label(profile.gender.value)
        return {
            'name': profile.name,
            'bio': profile.bio,
            'contact': profile.contact or "",
            'creativity': profile.creativity if category is Category.COLLAB else None,
            'gender_label': gender_label,
        }

    def _label(self, key: str) -> str:
        return self.messages.get_message(key, 'labels')

    def _reply(self, key: str, category: str, keyboard: Keyboard = Keyboard.NONE, **kwargs) -> Reply:
        return Reply(self.messages.get_message(key, category, **kwargs), keyboard)

    def _prompt(self, step: Step) -> Reply:
        category, key, keyboard = _PROMPTS[step]
        return self._reply(key, category, keyboard)

    def _rejection(self, transition: Transition) -> Reply:
        error = transition.error
        field = error.context.get('field', 'name')
        self.logger.debug(
            f"Rejected {field} at {transition.step.value}",
            extra={'user_id': error.user_id, 'step': transition.step.value}
        )
        _, _, keyboard = _PROMPTS[transition.step]
        return self._reply(f'invalid_{field}', 'registration', keyboard)


def parse_positive_int(value: str) -> Optional[int]:
    value = (value or "").strip()
    if not value.isdecimal():
        return None
    number = int(value)
    return number if number > 0 else None
