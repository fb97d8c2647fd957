"""Named tools: typed argument models plus the handler each name dispatches to."""
from __future__ import annotations
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from .errors import InvalidArguments, UnknownTool
from .intents import Intent, IntentHandler
from .models import ItemType, MAX_LEVEL, MIN_LEVEL, Signal, Topic
from .service import LearningService, resolve_user_id

MAX_ANSWER_LENGTH = 512


class ToolArgs(BaseModel):
    user_id: Optional[str] = None


class GetQuestionArgs(ToolArgs):
    topic: Topic = Field(validation_alias=AliasChoices("topic", "mode"))
    level: int = Field(ge=MIN_LEVEL, le=MAX_LEVEL)


class SubmitAnswerArgs(ToolArgs):
    q_id: str = Field(min_length=1, validation_alias=AliasChoices("q_id", "question_id"))
    user_answer: str = Field(min_length=1, max_length=MAX_ANSWER_LENGTH)
    signal: Optional[Signal] = None


class StartAssessmentArgs(ToolArgs):
    topic: Topic = Field(validation_alias=AliasChoices("topic", "mode"))


class SubmitAssessmentArgs(ToolArgs):
    session_id: str = Field(min_length=1, validation_alias=AliasChoices("session_id", "placement_id"))
    q_id: str = Field(min_length=1, validation_alias=AliasChoices("q_id", "question_id"))
    user_answer: str = Field(min_length=1, max_length=MAX_ANSWER_LENGTH)
    signal: Optional[Signal] = None


class DifficultyFeedbackArgs(ToolArgs):
    signal: Signal


class RespondPromotionArgs(ToolArgs):
    accept: bool


class LevelStatusArgs(ToolArgs):
    topic: Topic = Field(validation_alias=AliasChoices("topic", "mode"))
    level: Optional[int] = Field(default=None, ge=MIN_LEVEL, le=MAX_LEVEL)


class SaveItemArgs(ToolArgs):
    item_type: ItemType
    key: str = Field(min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)


class GetReviewItemsArgs(ToolArgs):
    limit: int = Field(default=5, ge=1, le=50)
    item_type: Optional[ItemType] = None


class LearningSummaryArgs(ToolArgs):
    days: int = Field(default=7, ge=1, le=365)


class TodayNotesArgs(ToolArgs):
    only_wrong: bool = False


class HandleIntentArgs(ToolArgs):
    intent: Intent
    topic: Optional[Topic] = Field(default=None, validation_alias=AliasChoices("topic", "mode"))
    signal: Optional[Signal] = None


Handler = Callable[[LearningService, Any, str], Dict[str, Any]]


@dataclass
class Tool:
    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: Handler

    def schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.args_model.model_json_schema(),
        }


TOOLS: Dict[str, Tool] = {}


def tool(name: str, description: str, args_model: Type[ToolArgs]):
    def register(fn: Handler) -> Handler:
        TOOLS[name] = Tool(name, description, args_model, fn)
        return fn
    return register


@tool("get_question", "Pick one active question for a topic and level, avoiding the caller's recent ones.", GetQuestionArgs)
def _get_question(svc: LearningService, args: GetQuestionArgs, user_id: str) -> Dict[str, Any]:
    return svc.get_question(args.topic, args.level, user_id=user_id)


@tool("submit_answer", "Grade an answer, log the attempt and update the learner's level.", SubmitAnswerArgs)
def _submit_answer(svc: LearningService, args: SubmitAnswerArgs, user_id: str) -> Dict[str, Any]:
    return svc.submit_answer(user_id, args.q_id, args.user_answer, args.signal)


@tool("start_assessment", "Start a placement test and return its first question.", StartAssessmentArgs)
def _start_assessment(svc: LearningService, args: StartAssessmentArgs, user_id: str) -> Dict[str, Any]:
    return svc.start_assessment(user_id, args.topic)


@tool("submit_assessment_answer", "Grade a placement answer; returns the next question or the final level.", SubmitAssessmentArgs)
def _submit_assessment_answer(svc: LearningService, args: SubmitAssessmentArgs, user_id: str) -> Dict[str, Any]:
    return svc.submit_assessment_answer(user_id, args.session_id, args.q_id, args.user_answer, args.signal)


@tool("get_user_state", "Current level, topic and placement status of the learner.", ToolArgs)
def _get_user_state(svc: LearningService, args: ToolArgs, user_id: str) -> Dict[str, Any]:
    return svc.get_user_state(user_id)


@tool("apply_difficulty_feedback", "Move the level by explicit feedback: easy +1, hard -1, neutral 0.", DifficultyFeedbackArgs)
def _apply_difficulty_feedback(svc: LearningService, args: DifficultyFeedbackArgs, user_id: str) -> Dict[str, Any]:
    return svc.apply_difficulty_feedback(user_id, args.signal)


@tool("respond_promotion", "Accept or decline a pending promotion offer.", RespondPromotionArgs)
def _respond_promotion(svc: LearningService, args: RespondPromotionArgs, user_id: str) -> Dict[str, Any]:
    return svc.respond_promotion(user_id, args.accept)


@tool("get_level_status", "Active questions at a level versus distinct ones the learner has attempted.", LevelStatusArgs)
def _get_level_status(svc: LearningService, args: LevelStatusArgs, user_id: str) -> Dict[str, Any]:
    return svc.get_level_status(user_id, args.topic, args.level)


@tool("save_item", "Save a word, mistake or note for later review.", SaveItemArgs)
def _save_item(svc: LearningService, args: SaveItemArgs, user_id: str) -> Dict[str, Any]:
    return svc.save_item(user_id, args.item_type.value, args.key, args.payload)


@tool("get_review_items", "Saved items to review, least recently seen first.", GetReviewItemsArgs)
def _get_review_items(svc: LearningService, args: GetReviewItemsArgs, user_id: str) -> Dict[str, Any]:
    item_type = args.item_type.value if args.item_type else None
    return svc.get_review_items(user_id, args.limit, item_type)


@tool("get_learning_summary", "Attempt, mistake and saved-item counts over the last N days.", LearningSummaryArgs)
def _get_learning_summary(svc: LearningService, args: LearningSummaryArgs, user_id: str) -> Dict[str, Any]:
    return svc.get_learning_summary(user_id, args.days)


@tool("get_today_notes", "Today's attempts with question, answer key and explanation.", TodayNotesArgs)
def _get_today_notes(svc: LearningService, args: TodayNotesArgs, user_id: str) -> Dict[str, Any]:
    return svc.get_today_notes(user_id, args.only_wrong)


@tool("review_wrong_answer", "A fresh question like today's first mistake.", ToolArgs)
def _review_wrong_answer(svc: LearningService, args: ToolArgs, user_id: str) -> Dict[str, Any]:
    return svc.review_wrong_answer(user_id)


@tool("handle_intent", "Drive the chat flow with an already-resolved intent.", HandleIntentArgs)
def _handle_intent(svc: LearningService, args: HandleIntentArgs, user_id: str) -> Dict[str, Any]:
    return IntentHandler(svc).handle(user_id, args.intent, args.topic, args.signal)


def list_tools() -> List[Dict[str, Any]]:
    return [t.schema() for t in TOOLS.values()]


def call_tool(
    db: Session,
    name: str,
    arguments: Optional[Dict[str, Any]] = None,
    *,
    user_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """Validate ``arguments`` for tool ``name`` and run it.

    ``user_id`` (from a conversation token) wins over the ``user_id``
    argument; with neither, the configured fallback identity is used.
    """
    t = TOOLS.get(name)
    if t is None:
        raise UnknownTool(f"Unknown tool: {name}", {"tools": sorted(TOOLS)})
    try:
        args = t.args_model.model_validate(arguments or {})
    except PydanticValidationError as exc:
        raise InvalidArguments(
            f"Invalid arguments for {name}",
            {"errors": exc.errors(include_url=False, include_context=False)},
        )
    caller = resolve_user_id(user_id or args.user_id)
    return t.handler(LearningService(db, rng=rng), args, caller)
