"""Translation service message and command models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CommandAction(str, Enum):
    EXECUTE = "execute"
    QUERY = "query"
    APPROVE = "approve"
    CANCEL = "cancel"
    CLARIFY = "clarify"


class ADECommand(BaseModel):
    """Structured command produced by translating a user message."""

    model_config = ConfigDict(populate_by_name=True)

    action: CommandAction
    agent: str = ""
    command: str = ""
    args: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)
    raw_prompt: str = Field(default="", alias="rawPrompt")
    clarification: str | None = None

    @field_validator("agent", "command", "raw_prompt", mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("args", mode="before")
    @classmethod
    def _null_to_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    @classmethod
    def clarify(cls, clarification: str) -> ADECommand:
        return cls(action=CommandAction.CLARIFY, confidence=0.0, clarification=clarification)


class MessageRequest(BaseModel):
    owner: str
    text: str = Field(min_length=1)
    access_token: str | None = None


class EngineResult(BaseModel):
    messages: list[str]
    command: ADECommand | None = None
    job_id: str | None = None
