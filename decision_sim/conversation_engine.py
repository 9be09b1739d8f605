# decision_sim/conversation_engine.py

import logging

from decision_sim.base_utils import BaseUtils
from decision_sim.exceptions import GenerationError, InvalidInput, MalformedOutput, NotFound
from decision_sim.llm_client import GenerationConfig, StructuredLlmClient
from decision_sim.models import (
    HOST,
    TEAM,
    ConversationState,
    Scenario,
    SimulationRecord,
    SimulationStatus,
    TranscriptEntry,
    conversation_state,
)
from decision_sim.output_schema import STRING, SchemaField, object_schema
from decision_sim.record_locks import RecordLocks
from decision_sim.scenario_generator import validate_team_setup
from decision_sim.simulation_prompts import (
    HOST_TURN_SYSTEM_PROMPT,
    HOST_TURN_USER_PROMPT,
    OPENING_SYSTEM_PROMPT,
    OPENING_USER_PROMPT,
)
from decision_sim.simulation_store import SimulationStore

logger = logging.getLogger("decision_sim.conversation")

OPENING_SCHEMA = object_schema(
    "opening",
    SchemaField(
        "openingPrompt",
        STRING,
        description="The immersive opening prompt for the team, ending in a question.",
    ),
)

OPENING_CONFIG = GenerationConfig(temperature=0.7, max_output_tokens=2048)

HOST_TURN_CONFIG = GenerationConfig(temperature=0.8, max_output_tokens=1024, top_p=1.0, top_k=1)


class ConversationEngine(BaseUtils):
    """
    Drives one simulation turn by turn.

        initializing --start--> awaiting_team --team entry--> awaiting_host --host entry--> awaiting_team
        awaiting_* --finish--> completed --analysis--> analyzed

    Every transition is persisted before the next model call, so a failed call
    leaves the record at the last good state and the same operation can be retried.
    """

    def __init__(self, store: SimulationStore, llm: StructuredLlmClient, locks: RecordLocks | None = None):
        self.store = store
        self.llm = llm
        self.locks = locks or RecordLocks()

    # -----------------------
    # Reads
    # -----------------------

    def get(self, simulation_id: str) -> SimulationRecord:
        record = self.store.get(simulation_id)
        if record is None:
            raise NotFound(f"Simulation not found: {simulation_id}")
        return record

    def list_simulations(self) -> list[SimulationRecord]:
        return self.store.list_all()

    # -----------------------
    # Transitions
    # -----------------------

    def start(self, team_size: int, domain: str, scenario: Scenario) -> SimulationRecord:
        validate_team_setup(team_size, domain)
        if not isinstance(scenario, Scenario):
            raise InvalidInput("Invalid scenario data provided")
        if not (scenario.title.strip() and scenario.description.strip() and scenario.key_decision.strip()):
            raise InvalidInput("Scenario requires a non-empty title, description and keyDecision")

        simulation_id = self.store.create(
            {
                "teamSize": team_size,
                "domain": domain,
                "scenario": scenario.to_document(),
                "status": SimulationStatus.PENDING.value,
                "transcript": [],
            }
        )
        logger.info("simulation %s created (team_size=%s, domain=%r)", simulation_id, team_size, domain)

        prompt = self.unsafe_string_format(
            OPENING_USER_PROMPT,
            TEAM_SIZE=team_size,
            DOMAIN=domain,
            TITLE=scenario.title,
            DESCRIPTION=scenario.description,
            KEY_DECISION=scenario.key_decision,
        )
        try:
            result = self.llm.generate(OPENING_SYSTEM_PROMPT, prompt, OPENING_SCHEMA, OPENING_CONFIG)
        except GenerationError as e:
            self.color_print(
                f"simulation {simulation_id}: opening line failed ({e.kind}); record left pending with an empty transcript",
                color="red",
                level=logging.WARNING,
            )
            raise

        opening_text = result.data["openingPrompt"].strip()
        if not opening_text:
            raise MalformedOutput("Model returned a blank openingPrompt", raw_text=result.text)

        opening = TranscriptEntry(role=HOST, content=opening_text)
        with self.locks.hold(simulation_id):
            self.store.update(simulation_id, {"transcript": [opening.to_document()]})
        return self.get(simulation_id)

    def submit_team_response(self, simulation_id: str, content: str) -> SimulationRecord:
        if not isinstance(content, str) or not content.strip():
            raise InvalidInput("Team response must be a non-empty string")
        content = content.strip()

        with self.locks.hold(simulation_id):
            record = self.get(simulation_id)
            state = conversation_state(record)

            if state in (ConversationState.AWAITING_TEAM, ConversationState.INITIALIZING):
                transcript = [e.to_document() for e in record.transcript]
                transcript.append(TranscriptEntry(role=TEAM, content=content).to_document())
                # persisted before the host call so the team's input survives a failure
                self.store.update(simulation_id, {"transcript": transcript})
                record = self.get(simulation_id)

            elif state == ConversationState.AWAITING_HOST:
                pending = record.transcript[-1].content
                if pending != content:
                    raise InvalidInput(
                        "The previous team response is still waiting for a host reply; resubmit it to retry"
                    )
                logger.info("simulation %s: resuming host reply for the pending team response", simulation_id)

            else:
                raise InvalidInput(f"Simulation {simulation_id} is not accepting team responses (state={state.value})")

            host_line = self._next_host_line(record)

            transcript = [e.to_document() for e in record.transcript]
            transcript.append(TranscriptEntry(role=HOST, content=host_line).to_document())
            self.store.update(simulation_id, {"transcript": transcript})

        return self.get(simulation_id)

    def finish(self, simulation_id: str) -> SimulationRecord:
        with self.locks.hold(simulation_id):
            record = self.get(simulation_id)
            if record.status == SimulationStatus.ERROR:
                raise InvalidInput(f"Simulation {simulation_id} is in error and cannot be finished")
            if record.status != SimulationStatus.PENDING:
                return record

            if len(record.transcript) < 2:
                logger.warning("simulation %s finished before a full exchange (%d entries)", simulation_id, len(record.transcript))

            self.store.update(simulation_id, {"status": SimulationStatus.COMPLETED.value})
            logger.info("simulation %s completed with %d transcript entries", simulation_id, len(record.transcript))
        return self.get(simulation_id)

    # -----------------------
    # Model calls
    # -----------------------

    def _next_host_line(self, record: SimulationRecord) -> str:
        # the whole transcript goes into every prompt, never a summary
        prompt = self.unsafe_string_format(
            HOST_TURN_USER_PROMPT,
            TITLE=record.scenario.title,
            KEY_DECISION=record.scenario.key_decision,
            DESCRIPTION=record.scenario.description,
            DOMAIN=record.domain,
            TEAM_SIZE=record.team_size,
            TRANSCRIPT=self.format_transcript(record.transcript),
        )
        try:
            result = self.llm.generate(HOST_TURN_SYSTEM_PROMPT, prompt, None, HOST_TURN_CONFIG)
        except GenerationError as e:
            self.color_print(
                f"simulation {record.id}: host reply failed ({e.kind}); team entry kept for retry",
                color="red",
                level=logging.WARNING,
            )
            raise
        return result.data
