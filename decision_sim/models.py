"""
Domain models shared by the generator, the conversation engine, the analyzer
and the HTTP layer. Wire names are camelCase, attributes are snake_case.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

HEATMAP_METRICS = (
    "Decisiveness",
    "Ethical Focus",
    "Data-Driven",
    "Long-Term Thinking",
    "Bias for Action",
    "Collaboration",
)

HOST = "host"
TEAM = "team"


class SimulationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ANALYZED = "analyzed"
    ERROR = "error"


class ConversationState(str, Enum):
    INITIALIZING = "initializing"
    AWAITING_TEAM = "awaiting_team"
    AWAITING_HOST = "awaiting_host"
    COMPLETED = "completed"
    ANALYZED = "analyzed"
    ERRORED = "errored"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Scenario(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str
    description: str
    key_decision: str


class TranscriptEntry(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    role: Literal["host", "team"]
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Analysis(CamelModel):
    # Ranges ([1,100] overall, [1,10] per metric) are requested from the model
    # but not enforced here.
    overall_score: float
    key_strengths: list[str]
    growth_areas: list[str]
    actionable_feedback: str
    heatmap_data: dict[str, float]


class SimulationRecord(CamelModel):
    id: str
    team_size: int
    domain: str
    scenario: Scenario
    status: SimulationStatus = SimulationStatus.PENDING
    transcript: list[TranscriptEntry] = Field(default_factory=list)
    analysis: Optional[Analysis] = None
    created_at: Optional[datetime] = None

    @property
    def last_role(self) -> str | None:
        if not self.transcript:
            return None
        return self.transcript[-1].role


def conversation_state(record: SimulationRecord) -> ConversationState:
    if record.status == SimulationStatus.ERROR:
        return ConversationState.ERRORED
    if record.status == SimulationStatus.ANALYZED:
        return ConversationState.ANALYZED
    if record.status == SimulationStatus.COMPLETED:
        return ConversationState.COMPLETED
    if not record.transcript:
        return ConversationState.INITIALIZING
    if record.last_role == TEAM:
        return ConversationState.AWAITING_HOST
    return ConversationState.AWAITING_TEAM
