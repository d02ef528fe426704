"""Shared fixtures: in-memory store, real templates, mocked notifier."""

import random
from unittest.mock import AsyncMock

import pytest

from pims_bot.core.error_handling import error_tracker
from pims_bot.database import MemoryProfileStore
from pims_bot.messages import MessageService
from pims_bot.models import Category, Gender, Profile
from pims_bot.services import ConversationStateMachine, DialogueController, MatchEngine


def make_profile(user_id, category=Category.FRIENDSHIP, credits=1, **fields):
    """Profile с разумными значениями по умолчанию"""
    return Profile(
        id=user_id,
        name=fields.pop("name", f"User{user_id}"),
        bio=fields.pop("bio", "люблю кофе"),
        contact=fields.pop("contact", f"@user{user_id}"),
        category=category,
        credits=credits,
        **fields
    )


@pytest.fixture(autouse=True)
def reset_error_tracker():
    error_tracker.reset()
    yield
    error_tracker.reset()


@pytest.fixture
def store():
    return MemoryProfileStore()


@pytest.fixture
def messages():
    return MessageService(locale="ru")


@pytest.fixture
def machine():
    return ConversationStateMachine()


@pytest.fixture
def engine(store):
    return MatchEngine(store, rng=random.Random(42))


@pytest.fixture
def notifier():
    notifier = AsyncMock()
    notifier.notify = AsyncMock()
    return notifier


@pytest.fixture
def controller(store, engine, machine, messages, notifier):
    return DialogueController(
        store=store,
        engine=engine,
        machine=machine,
        messages=messages,
        notifier=notifier
    )


@pytest.fixture
async def love_pool(store):
    """male initiator (1, credits=1) и одна female кандидатка (2)"""
    await store.upsert(make_profile(1, Category.LOVE, credits=1, gender=Gender.MALE))
    await store.upsert(make_profile(2, Category.LOVE, credits=0, gender=Gender.FEMALE, name="Вера"))
    return store


@pytest.fixture
def profile_factory():
    return make_profile
