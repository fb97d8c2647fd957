"""Chat flow driven by already-resolved intents.

Turning free text into an :class:`Intent` is left to the chat front end; this
module only decides what each intent does given the learner's pending state.
"""
from __future__ import annotations
import logging
from enum import Enum
from typing import Any, Dict, Optional

from .errors import ValidationError
from .models import Signal, Topic
from .proficiency import REASON_LEVEL_CLEAR
from .service import LearningService, parse_signal, parse_topic
from .state_store import ConversationStateStore

logger = logging.getLogger(__name__)

ANSWER_FORMAT_HINT = "Answer with a number (1, 2, ...) or a letter (A-E)."
DIFFICULTY_HINT = "If the level feels easy or hard, say so and the next question will adjust."


class Intent(str, Enum):
    NEXT = "next"
    STOP = "stop"
    SUMMARY = "summary"
    WRONG_NOTES = "wrong_notes"
    REVIEW_WRONG = "review_wrong"
    SWITCH_TOPIC = "switch_topic"
    ACCEPT = "accept"
    DECLINE = "decline"
    MENU_REVIEW = "menu_review"
    MENU_TOPIC = "menu_topic"


def _pending_key(user_id: str) -> str:
    return f"pending:{user_id}"


def _intro_key(user_id: str) -> str:
    return f"intro_shown:{user_id}"


class IntentHandler:
    def __init__(self, service: LearningService, store: Optional[ConversationStateStore] = None) -> None:
        self.service = service
        self.store = store or ConversationStateStore(service.db)

    def handle(self, user_id: str, intent: Any, topic: Any = None, signal: Any = None) -> Dict[str, Any]:
        try:
            intent = Intent(intent)
        except ValueError:
            raise ValidationError(f"Unknown intent: {intent}", {"allowed": [i.value for i in Intent]})

        if intent is Intent.STOP:
            self._clear_menu(user_id)
            return self._notes(user_id, intent, only_wrong=True)

        state = self.service.get_user_state(user_id)
        offer = state["pending_promotion"]
        if offer is not None:
            if intent is Intent.ACCEPT:
                return self._accept(user_id)
            if intent is Intent.DECLINE:
                return self._decline(user_id, offer)
            return {"intent": intent.value, "kind": "offer", "offer": offer, "options": ["accept", "decline"]}

        menu = self.store.get(_pending_key(user_id))
        if menu and menu.get("type") == "post_clear_menu":
            if intent is Intent.MENU_REVIEW:
                self._clear_menu(user_id)
                return self._notes(user_id, intent, only_wrong=True)
            if intent is Intent.MENU_TOPIC:
                self._clear_menu(user_id)
                return {"intent": intent.value, "kind": "topics", "topics": [t.value for t in Topic]}
            return {"intent": intent.value, "kind": "menu", "level": menu.get("level"), "options": ["menu_review", "menu_topic"]}

        if intent is Intent.SWITCH_TOPIC:
            if topic is None:
                raise ValidationError("topic is required to switch topics")
            return self._switch_topic(user_id, parse_topic(topic))
        if intent is Intent.SUMMARY:
            return self._notes(user_id, intent, only_wrong=False)
        if intent is Intent.WRONG_NOTES:
            return self._notes(user_id, intent, only_wrong=True)
        if intent is Intent.REVIEW_WRONG:
            result = self.service.review_wrong_answer(user_id)
            return {"intent": intent.value, "kind": "question", **result}
        if intent is Intent.NEXT:
            return self._next(user_id, state, signal)
        return {"intent": intent.value, "kind": "guide", "intents": [i.value for i in Intent]}

    def _notes(self, user_id: str, intent: Intent, *, only_wrong: bool) -> Dict[str, Any]:
        result = self.service.get_today_notes(user_id, only_wrong=only_wrong)
        return {"intent": intent.value, "kind": "notes", **result}

    def _serve(self, user_id: str, topic: str, level: int, intent: Intent, **extra: Any) -> Dict[str, Any]:
        result = self.service.get_question(topic, level, user_id=user_id)
        if result["promotion_offer"] is not None:
            return {
                "intent": intent.value,
                "kind": "offer",
                "offer": {"level": result["promotion_offer"], "reason": REASON_LEVEL_CLEAR},
                "options": ["accept", "decline"],
                **extra,
            }
        return {"intent": intent.value, "kind": "question", "question": result["question"], **extra}

    def _next(self, user_id: str, state: Dict[str, Any], signal: Any) -> Dict[str, Any]:
        extra: Dict[str, Any] = {}
        with self.service.unit_of_work():
            if not self.store.get(_intro_key(user_id)):
                extra["hints"] = [ANSWER_FORMAT_HINT, DIFFICULTY_HINT]
                self.store.put(_intro_key(user_id), True, expires=False)
        level = state["level"]
        sig = parse_signal(signal)
        if sig in (Signal.EASY.value, Signal.HARD.value):
            level = self.service.apply_difficulty_feedback(user_id, sig)["level"]
        topic = state["topic"] or Topic.TOEIC.value
        return self._serve(user_id, topic, level, Intent.NEXT, **extra)

    def _switch_topic(self, user_id: str, topic: str) -> Dict[str, Any]:
        state = self.service.set_topic(user_id, topic)
        served = self._serve(user_id, topic, state["level"], Intent.SWITCH_TOPIC)
        return {**served, "topic": topic}

    def _accept(self, user_id: str) -> Dict[str, Any]:
        resolved = self.service.respond_promotion(user_id, True)
        topic = resolved["topic"] or Topic.TOEIC.value
        served = self._serve(user_id, topic, resolved["level"], Intent.ACCEPT)
        return {**served, "level": resolved["level"]}

    def _decline(self, user_id: str, offer: Dict[str, Any]) -> Dict[str, Any]:
        resolved = self.service.respond_promotion(user_id, False)
        if offer.get("reason") == REASON_LEVEL_CLEAR:
            with self.service.unit_of_work():
                self.store.put(_pending_key(user_id), {"type": "post_clear_menu", "level": resolved["level"]})
            return {
                "intent": Intent.DECLINE.value,
                "kind": "menu",
                "level": resolved["level"],
                "options": ["menu_review", "menu_topic"],
            }
        return {"intent": Intent.DECLINE.value, "kind": "declined", "level": resolved["level"]}

    def _clear_menu(self, user_id: str) -> None:
        with self.service.unit_of_work():
            self.store.delete(_pending_key(user_id))
