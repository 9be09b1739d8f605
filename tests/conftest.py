"""Configuration for pytest.

Fixtures wire the simulation components to an in-memory SQLite store and a
scripted chat model, so no test reaches Vertex AI.
"""
import json
import logging
from typing import Any

import pytest
from langchain_core.messages import AIMessage

from decision_sim.analyzer import Analyzer
from decision_sim.backend import Backend
from decision_sim.conversation_engine import ConversationEngine
from decision_sim.entities import Base
from decision_sim.google_helpers import LOG_FORMAT, create_session_factory, get_db_engine
from decision_sim.llm_client import StructuredLlmClient
from decision_sim.models import HEATMAP_METRICS, Scenario
from decision_sim.record_locks import RecordLocks
from decision_sim.scenario_generator import ScenarioGenerator
from decision_sim.simulation_store import SimulationStore


@pytest.fixture(scope="session", autouse=True)
def configure_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, force=True)


class ScriptedChatModel:
    """
    Stands in for ChatVertexAI: every invoke() pops the next scripted reply.

    A reply can be an AIMessage, a plain string, a dict/list (sent as JSON text)
    or an exception instance, which is raised instead.
    """

    def __init__(self):
        self.replies: list[Any] = []
        self.calls: list[list] = []

    def queue(self, *replies: Any) -> "ScriptedChatModel":
        self.replies.extend(replies)
        return self

    def invoke(self, messages):
        self.calls.append(list(messages))
        if not self.replies:
            raise AssertionError("ScriptedChatModel has no reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, AIMessage):
            return reply
        if isinstance(reply, (dict, list)):
            reply = json.dumps(reply)
        return AIMessage(content=reply, response_metadata={"finish_reason": "STOP"})

    @property
    def last_prompt(self) -> str:
        return self.calls[-1][-1].content

    @property
    def last_system_instruction(self) -> str:
        return self.calls[-1][0].content


class ScriptedModelFactory:
    """Records the (config, schema) pair of every model request."""

    def __init__(self, model: ScriptedChatModel):
        self.model = model
        self.requests: list[tuple] = []

    def __call__(self, config, output_schema):
        self.requests.append((config, output_schema))
        return self.model


def make_scenario_item(i: int = 0) -> dict:
    return {
        "title": f"The Data Breach Dilemma {i}",
        "description": "Customer records leaked overnight. The press has not noticed yet.",
        "keyDecision": "Go public with the breach now, or wait for more information?",
    }


def make_analysis_payload(**overrides) -> dict:
    payload = {
        "overallScore": 72,
        "keyStrengths": ["Acted quickly", "Considered patient safety"],
        "growthAreas": ["Gather more data before committing"],
        "actionableFeedback": "Assign a devil's advocate before each major decision.",
        "heatmapData": {metric: 7 for metric in HEATMAP_METRICS},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def session_factory():
    engine = get_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def chat_model() -> ScriptedChatModel:
    return ScriptedChatModel()


@pytest.fixture
def model_factory(chat_model: ScriptedChatModel) -> ScriptedModelFactory:
    return ScriptedModelFactory(chat_model)


@pytest.fixture
def llm_client(model_factory: ScriptedModelFactory) -> StructuredLlmClient:
    return StructuredLlmClient(model_factory)


@pytest.fixture
def store(session_factory) -> SimulationStore:
    return SimulationStore(session_factory)


@pytest.fixture
def locks() -> RecordLocks:
    return RecordLocks()


@pytest.fixture
def scenario_generator(llm_client) -> ScenarioGenerator:
    return ScenarioGenerator(llm_client)


@pytest.fixture
def engine(store, llm_client, locks) -> ConversationEngine:
    return ConversationEngine(store, llm_client, locks)


@pytest.fixture
def analyzer(store, llm_client, locks) -> Analyzer:
    return Analyzer(store, llm_client, locks)


@pytest.fixture
def backend(session_factory, model_factory) -> Backend:
    return Backend(session_factory=session_factory, model_factory=model_factory)


@pytest.fixture
def scenario() -> Scenario:
    return Scenario.model_validate(make_scenario_item())
