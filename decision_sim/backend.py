# decision_sim/backend.py

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from decision_sim.analyzer import Analyzer
from decision_sim.base_utils import BaseUtils
from decision_sim.conversation_engine import ConversationEngine
from decision_sim.entities import Base
from decision_sim.exceptions import InvalidInput
from decision_sim.google_helpers import Settings, create_session_factory, get_db_engine, load_settings
from decision_sim.llm_client import (
    GenerationConfig,
    StructuredLlmClient,
    VertexModelFactory,
    safety_thresholds_for,
)
from decision_sim.models import HOST, TEAM, Scenario, SimulationRecord
from decision_sim.output_schema import SchemaField
from decision_sim.record_locks import RecordLocks
from decision_sim.scenario_generator import ScenarioGenerator
from decision_sim.simulation_store import SimulationStore

logger = logging.getLogger("decision_sim.backend")

ModelFactory = Callable[[GenerationConfig, Optional[SchemaField]], Any]

# the client-facing transcript calls the team "user"
_DISPLAY_ROLES = {HOST: "host", TEAM: "user"}


class Backend(BaseUtils):
    """
    Wires the store, the model client and the three simulation components,
    and exposes one handle_* method per client request.

    Handlers take the camelCase request payload and return camelCase dicts.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        session_factory: sessionmaker | None = None,
        model_factory: ModelFactory | None = None,
    ):
        if settings is None and (session_factory is None or model_factory is None):
            settings = load_settings()
        self.settings = settings

        if session_factory is None:
            engine = get_db_engine(settings.database_url)
            Base.metadata.create_all(engine)
            session_factory = create_session_factory(engine)
        self.SessionFactory = session_factory

        if model_factory is None:
            model_factory = VertexModelFactory(
                project=settings.project_id,
                region=settings.region,
                model_name=settings.model_name,
                timeout=settings.llm_timeout,
            )

        threshold = settings.safety_threshold if settings else "BLOCK_MEDIUM_AND_ABOVE"
        self.llm = StructuredLlmClient(
            model_factory,
            default_safety_thresholds=safety_thresholds_for(threshold),
            max_attempts=settings.llm_max_attempts if settings else 1,
        )

        self.store = SimulationStore(self.SessionFactory)
        self.locks = RecordLocks()
        self.scenarios = ScenarioGenerator(self.llm)
        self.engine = ConversationEngine(self.store, self.llm, self.locks)
        self.analyzer = Analyzer(self.store, self.llm, self.locks)

    # -----------------------
    # Request handlers
    # -----------------------

    def handle_generate_scenarios(self, payload: dict) -> list[dict]:
        logger.debug("generate_scenarios payload=\n%s", self.preview(payload))
        scenarios = self.scenarios.generate_scenarios(payload.get("teamSize"), payload.get("domain"))
        return [scenario.to_document() for scenario in scenarios]

    def handle_start_simulation(self, payload: dict) -> dict:
        logger.debug("start_simulation payload=\n%s", self.preview(payload))
        raw_scenario = payload.get("scenario")
        if not isinstance(raw_scenario, dict):
            raise InvalidInput("Invalid scenario data provided")
        try:
            scenario = Scenario.model_validate(raw_scenario)
        except ValidationError as e:
            raise InvalidInput(f"Invalid scenario data provided: {e.error_count()} problem(s)") from e

        record = self.engine.start(payload.get("teamSize"), payload.get("domain"), scenario)
        return {
            "simulationId": record.id,
            "openingPrompt": record.transcript[0].content,
        }

    def handle_submit_turn(self, payload: dict) -> dict:
        simulation_id = self._require_simulation_id(payload)
        record = self.engine.submit_team_response(simulation_id, payload.get("content"))
        return {"nextHostLine": record.transcript[-1].content}

    def handle_finish_simulation(self, payload: dict) -> dict:
        simulation_id = self._require_simulation_id(payload)
        self.engine.finish(simulation_id)
        return {"ok": True}

    def handle_analyze(self, payload: dict) -> dict:
        simulation_id = self._require_simulation_id(payload)
        return self.analyzer.analyze(simulation_id).to_document()

    def handle_get_simulation(self, simulation_id: str) -> dict:
        return self.detail_view(self.engine.get(simulation_id))

    def handle_list_simulations(self) -> list[dict]:
        return [self.summary_view(record) for record in self.engine.list_simulations()]

    # -----------------------
    # Views
    # -----------------------

    def detail_view(self, record: SimulationRecord) -> dict:
        return {
            "id": record.id,
            "teamSize": record.team_size,
            "domain": record.domain,
            "status": record.status.value,
            "scenario": record.scenario.to_document(),
            "transcript": [
                {"role": _DISPLAY_ROLES[entry.role], "content": entry.content}
                for entry in record.transcript
            ],
            "analysis": record.analysis.to_document() if record.analysis else None,
            "createdAt": record.created_at.isoformat() if record.created_at else None,
        }

    def summary_view(self, record: SimulationRecord) -> dict:
        return {
            "id": record.id,
            "teamSize": record.team_size,
            "domain": record.domain,
            "status": record.status.value,
            "scenarioTitle": record.scenario.title,
            "transcriptLength": len(record.transcript),
            "overallScore": record.analysis.overall_score if record.analysis else None,
            "createdAt": record.created_at.isoformat() if record.created_at else None,
        }

    def _require_simulation_id(self, payload: dict) -> str:
        simulation_id = payload.get("simulationId")
        if not isinstance(simulation_id, str) or not simulation_id.strip():
            raise InvalidInput("Missing or invalid 'simulationId'")
        return simulation_id.strip()
