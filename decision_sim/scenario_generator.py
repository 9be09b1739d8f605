import logging

from decision_sim.base_utils import BaseUtils
from decision_sim.exceptions import GenerationFailed, InvalidInput, MalformedOutput
from decision_sim.llm_client import GenerationConfig, StructuredLlmClient
from decision_sim.models import Scenario
from decision_sim.output_schema import STRING, SchemaField, array_schema, object_schema
from decision_sim.simulation_prompts import SCENARIO_SYSTEM_PROMPT, SCENARIO_USER_PROMPT

logger = logging.getLogger("decision_sim.scenarios")

SCENARIO_COUNT = 10

SCENARIO_SCHEMA = array_schema(
    "scenarios",
    object_schema(
        "scenario",
        SchemaField("title", STRING, description="A short, catchy title for the scenario (e.g., 'The Data Breach Dilemma')."),
        SchemaField("description", STRING, description="A 2-3 sentence summary of the dilemma the team faces."),
        SchemaField(
            "keyDecision",
            STRING,
            description="The primary, high-stakes decision the team must make (e.g., 'Go public with the breach now, or wait for more information?').",
        ),
    ),
    min_items=SCENARIO_COUNT,
    max_items=SCENARIO_COUNT,
    description=f"A list of {SCENARIO_COUNT} scenario objects.",
)

# more creative than the host turns; room for 10 detailed scenarios
SCENARIO_CONFIG = GenerationConfig(temperature=0.8, max_output_tokens=8192)


def validate_team_setup(team_size, domain) -> None:
    if isinstance(team_size, bool) or not isinstance(team_size, int) or team_size <= 0:
        raise InvalidInput("Invalid 'teamSize' provided. Must be a positive number.")
    if not isinstance(domain, str) or not domain.strip():
        raise InvalidInput("Invalid 'domain' provided. Must be a non-empty string.")


class ScenarioGenerator(BaseUtils):
    def __init__(self, llm: StructuredLlmClient):
        self.llm = llm

    def generate_scenarios(self, team_size: int, domain: str) -> list[Scenario]:
        validate_team_setup(team_size, domain)

        prompt = self.unsafe_string_format(SCENARIO_USER_PROMPT, TEAM_SIZE=team_size, DOMAIN=domain)
        try:
            result = self.llm.generate(SCENARIO_SYSTEM_PROMPT, prompt, SCENARIO_SCHEMA, SCENARIO_CONFIG)
        except MalformedOutput as e:
            raise GenerationFailed(
                f"Scenario batch rejected: {e}",
                raw_text=e.raw_text,
                problems=e.problems,
            ) from e

        items = result.data
        if not isinstance(items, list) or len(items) != SCENARIO_COUNT:
            count = len(items) if isinstance(items, list) else 0
            raise GenerationFailed(f"Expected exactly {SCENARIO_COUNT} scenarios, got {count}", raw_text=result.text)

        problems = []
        for i, item in enumerate(items):
            for key in ("title", "description", "keyDecision"):
                if not str(item.get(key) or "").strip():
                    problems.append(f"$[{i}].{key}: empty")
        if problems:
            raise GenerationFailed(
                f"Scenario batch rejected: {'; '.join(problems)}",
                raw_text=result.text,
                problems=problems,
            )

        scenarios = [
            Scenario(
                title=item["title"].strip(),
                description=item["description"].strip(),
                key_decision=item["keyDecision"].strip(),
            )
            for item in items
        ]
        logger.info("generated %d scenarios for team_size=%s domain=%r", len(scenarios), team_size, domain)
        return scenarios
