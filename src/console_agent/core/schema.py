"""
Schema definitions for provider <-> agent <-> tool <-> recorder messages.

These data models serve as the contract between the LLM provider, the conversation loop, the code
and plan executors, and the session recorder.  We keep them separate from runtime logic so they can
be imported anywhere without side-effects.
"""

from datetime import (
    datetime,
    timezone,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

Message = Dict[str, Any]
"""One chat message in the provider's wire shape: ``{"role": ..., "content": ...}``."""

ToolHandler = Callable[[Dict[str, Any]], Any]

StopReason = Literal["end_turn", "tool_use"]

SessionMode = Literal["one_shot", "interactive", "explain"]


def utcnow() -> datetime:
    """Timezone-aware current time, used for record timestamps."""
    return datetime.now(timezone.utc)


class ToolCall(BaseModel):
    """A call the model wants the agent to execute."""

    id: str = Field(..., description="Provider-assigned call id, echoed back with the result")
    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Arguments for the tool")


class ChatResult(BaseModel):
    """Canonical result of one provider round trip (or a summed agent run)."""

    text: str = ""
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    stop_reason: StopReason = "end_turn"

    @property
    def total_tokens(self) -> int:
        """Input plus output tokens, missing counts treated as zero."""
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    @property
    def is_tool_use(self) -> bool:
        """True only when the model stopped to call tools *and* named at least one."""
        return self.stop_reason == "tool_use" and bool(self.tool_calls)


class ToolDefinition(BaseModel):
    """A named, schema-described capability the model may invoke."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class PlanStep(BaseModel):
    """One step of a multi-step plan proposed by the model."""

    description: str = ""
    code: str = ""


class StepResult(BaseModel):
    """Outcome of one executed plan step."""

    index: int
    description: str
    code: str
    output: str = ""
    return_value: Any = None
    error: Optional[str] = None

    def to_text(self) -> str:
        """Summary fed back into the conversation."""
        report = f"Step {self.index} ({self.description}):\n"
        if self.output.strip():
            report += f"Output: {self.output.strip()}\n"
        if self.error:
            report += f"Error: {self.error}"
        else:
            report += f"Return value: {self.return_value!r}"
        return report


class PlanOutcome(BaseModel):
    """Everything that happened to a plan: executed steps plus an optional decline record."""

    results: List[StepResult] = Field(default_factory=list)
    declined: bool = False
    declined_at: Optional[int] = None  # step number; None means the whole plan was declined
    feedback: Optional[str] = None
    after_edit: bool = False

    def to_text(self) -> str:
        """Report handed back to the model as the ``execute_plan`` tool result."""
        if self.declined and self.declined_at is None:
            return f"User declined the plan. Feedback: {self.feedback}"

        parts = [result.to_text() for result in self.results]
        if self.declined:
            reason = "User declined after edit." if self.after_edit else "User declined."
            parts.append(f"Step {self.declined_at}: {reason} Feedback: {self.feedback}")
        return "\n\n".join(parts)


class SessionRecord(BaseModel):
    """A persisted conversation, written by the session recorder."""

    id: str
    query: str
    conversation: List[Message] = Field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    user_name: Optional[str] = None
    mode: SessionMode = "one_shot"
    code_executed: Optional[str] = None
    code_output: Optional[str] = None
    code_result: Optional[str] = None
    console_output: Optional[str] = None
    executed: bool = False
    provider: Optional[str] = None
    model: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
