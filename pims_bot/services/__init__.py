from .conversation import (
    Completion,
    CompletionAction,
    ConversationState,
    ConversationStateMachine,
    Step,
    Transition,
    TransitionKind,
)
from .match_engine import MatchEngine, MatchResult, MatchStatus
from .dialogue import (
    Command,
    DialogueController,
    Event,
    FreeText,
    Keyboard,
    MenuChoice,
    Reply,
    Start,
)

__all__ = [
    "Completion",
    "CompletionAction",
    "ConversationState",
    "ConversationStateMachine",
    "Step",
    "Transition",
    "TransitionKind",
    "MatchEngine",
    "MatchResult",
    "MatchStatus",
    "Command",
    "DialogueController",
    "Event",
    "FreeText",
    "Keyboard",
    "MenuChoice",
    "Reply",
    "Start",
]
