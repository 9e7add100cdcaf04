"""Language-model chat collaborator used to grade verification answers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional, Protocol, Sequence, Union, cast

from agents import Agent, ModelSettings, RunConfig, Runner
from openai import OpenAIError
from openai.types.shared.reasoning import Reasoning
from openai.types.shared.reasoning_effort import ReasoningEffort
from pydantic import BaseModel

from .assessment_result import ChallengeAssessment, TeachBackAssessment, VerificationMode
from .config import Settings
from .verification import parse_assessment

logger = logging.getLogger(__name__)

GRADER_INSTRUCTIONS = (
    "You grade learner answers for an adaptive learning coach. "
    "Follow the rubric given in the conversation and always finish with the requested JSON object."
)


class ChatMessage(BaseModel):
    role: Literal["system", "developer", "user", "assistant"]
    content: str


class ChatModel(Protocol):
    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        ...


def _reasoning_effort(value: str) -> ReasoningEffort:
    allowed = {"minimal", "low", "medium", "high"}
    effort = value if value in allowed else "low"
    return cast(ReasoningEffort, effort)


class AgentChatModel:
    """``ChatModel`` backed by an OpenAI Agents SDK agent."""

    def __init__(self, model: str, reasoning: str = "low") -> None:
        self._model = model
        self._reasoning = reasoning
        self._agent: Agent[Any] = Agent(
            name="Cadence Grader",
            instructions=GRADER_INSTRUCTIONS,
            model=model,
        )

    @property
    def model(self) -> str:
        return self._model

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        items: List[Dict[str, str]] = [message.model_dump() for message in messages]
        result = await Runner.run(
            self._agent,
            items,  # type: ignore[arg-type]
            run_config=RunConfig(
                model_settings=ModelSettings(
                    reasoning=Reasoning(effort=_reasoning_effort(self._reasoning)),
                )
            ),
        )
        output = result.final_output
        if output is None:
            return ""
        return output if isinstance(output, str) else str(output)


def build_chat_model(settings: Settings) -> Optional[AgentChatModel]:
    if not settings.openai_api_key:
        logger.info("OPENAI_API_KEY not configured; model grading disabled.")
        return None
    return AgentChatModel(settings.cadence_agent_model, settings.cadence_agent_reasoning)


async def grade_with_model(
    chat_model: Optional[ChatModel],
    mode: Union[VerificationMode, str],
    messages: Sequence[ChatMessage],
) -> Optional[Union[ChallengeAssessment, TeachBackAssessment]]:
    """Ask the model for an assessment and parse it.

    Returns ``None`` when no model is configured, the call fails, or the reply
    holds no parseable assessment.
    """
    if chat_model is None or not messages:
        return None
    try:
        reply = await chat_model.chat(messages)
    except OpenAIError as exc:
        logger.warning("Assessment model call failed (%s): %s", mode, exc)
        return None
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected assessment model failure (%s)", mode)
        return None
    assessment = parse_assessment(mode, reply)
    if assessment is None:
        logger.warning("Assessment model reply held no %s assessment.", mode)
    return assessment


__all__ = [
    "AgentChatModel",
    "ChatMessage",
    "ChatModel",
    "build_chat_model",
    "grade_with_model",
]
