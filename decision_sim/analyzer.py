# decision_sim/analyzer.py

import logging

from pydantic import ValidationError

from decision_sim.base_utils import BaseUtils
from decision_sim.exceptions import InsufficientData, InvalidInput, MalformedOutput, NotFound
from decision_sim.llm_client import GenerationConfig, StructuredLlmClient
from decision_sim.models import HEATMAP_METRICS, Analysis, SimulationStatus
from decision_sim.output_schema import (
    NUMBER,
    STRING,
    SchemaField,
    array_schema,
    object_schema,
)
from decision_sim.record_locks import RecordLocks
from decision_sim.simulation_prompts import ANALYSIS_SYSTEM_PROMPT, ANALYSIS_USER_PROMPT
from decision_sim.simulation_store import SimulationStore

logger = logging.getLogger("decision_sim.analyzer")

MIN_TRANSCRIPT_ENTRIES = 2

OVERALL_SCORE_RANGE = (1, 100)
METRIC_SCORE_RANGE = (1, 10)

ANALYSIS_SCHEMA = object_schema(
    "analysis",
    SchemaField("overallScore", NUMBER, description="A single holistic score from 1 to 100."),
    array_schema(
        "keyStrengths",
        SchemaField("strength", STRING),
        description="2-3 key strengths the team demonstrated.",
    ),
    array_schema(
        "growthAreas",
        SchemaField("growthArea", STRING),
        description="2-3 areas where the team needs to improve.",
    ),
    SchemaField(
        "actionableFeedback",
        STRING,
        description="A single, concise paragraph of actionable feedback for the team.",
    ),
    object_schema(
        "heatmapData",
        *[SchemaField(metric, NUMBER, description=f"{metric} score from 1 to 10.") for metric in HEATMAP_METRICS],
        description="Scores from 1 to 10 for each behavioural metric.",
    ),
)

# lower temperature for more consistent scoring
ANALYSIS_CONFIG = GenerationConfig(temperature=0.5, max_output_tokens=8192)


class Analyzer(BaseUtils):
    """
    Scores a finished transcript once and stores the result on the record.

    A second call for the same simulation returns the stored analysis without
    another model call.
    """

    def __init__(self, store: SimulationStore, llm: StructuredLlmClient, locks: RecordLocks | None = None):
        self.store = store
        self.llm = llm
        self.locks = locks or RecordLocks()

    def analyze(self, simulation_id: str) -> Analysis:
        with self.locks.hold(simulation_id):
            record = self.store.get(simulation_id)
            if record is None:
                raise NotFound(f"Simulation not found: {simulation_id}")

            if record.analysis is not None:
                logger.info("simulation %s already analyzed; returning the stored analysis", simulation_id)
                return record.analysis

            if record.status == SimulationStatus.ERROR:
                raise InvalidInput(f"Simulation {simulation_id} is in error and cannot be analyzed")
            if len(record.transcript) < MIN_TRANSCRIPT_ENTRIES:
                raise InsufficientData(
                    f"Simulation {simulation_id} has {len(record.transcript)} transcript entries; "
                    f"at least {MIN_TRANSCRIPT_ENTRIES} are needed for an analysis"
                )

            system_prompt = self.unsafe_string_format(
                ANALYSIS_SYSTEM_PROMPT,
                HEATMAP_METRICS="\n".join(f"  - {metric}" for metric in HEATMAP_METRICS),
            )
            prompt = self.unsafe_string_format(
                ANALYSIS_USER_PROMPT,
                TEAM_SIZE=record.team_size,
                DOMAIN=record.domain,
                TRANSCRIPT=self.format_transcript(record.transcript),
            )
            result = self.llm.generate(system_prompt, prompt, ANALYSIS_SCHEMA, ANALYSIS_CONFIG)

            data = dict(result.data)
            # only the fixed metric set is kept
            data["heatmapData"] = {metric: data["heatmapData"][metric] for metric in HEATMAP_METRICS}
            try:
                analysis = Analysis.model_validate(data)
            except ValidationError as e:
                raise MalformedOutput(f"Analysis reply could not be read: {e}", raw_text=result.text) from e

            self._warn_out_of_range(simulation_id, analysis)

            # analysis and status land in one write
            self.store.update(
                simulation_id,
                {"analysis": analysis.to_document(), "status": SimulationStatus.ANALYZED.value},
            )
            logger.info("simulation %s analyzed (overallScore=%s)", simulation_id, analysis.overall_score)
            return analysis

    def _warn_out_of_range(self, simulation_id: str, analysis: Analysis) -> None:
        low, high = OVERALL_SCORE_RANGE
        if not low <= analysis.overall_score <= high:
            logger.warning(
                "simulation %s: overallScore %s outside [%s, %s]; stored as returned",
                simulation_id, analysis.overall_score, low, high,
            )
        low, high = METRIC_SCORE_RANGE
        for metric, value in analysis.heatmap_data.items():
            if not low <= value <= high:
                logger.warning(
                    "simulation %s: %s score %s outside [%s, %s]; stored as returned",
                    simulation_id, metric, value, low, high,
                )
