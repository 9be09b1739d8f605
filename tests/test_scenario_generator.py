import pytest
from google.api_core.exceptions import ServiceUnavailable

from conftest import make_scenario_item
from decision_sim.exceptions import GenerationFailed, InvalidInput, MalformedOutput, TransportFailure
from decision_sim.models import Scenario
from decision_sim.scenario_generator import SCENARIO_COUNT, SCENARIO_SCHEMA


def batch(n=SCENARIO_COUNT):
    return [make_scenario_item(i) for i in range(n)]


def test_generates_exactly_ten_scenarios(scenario_generator, chat_model, model_factory):
    chat_model.queue(batch())

    scenarios = scenario_generator.generate_scenarios(4, "Healthcare")

    assert len(scenarios) == 10
    assert all(isinstance(s, Scenario) for s in scenarios)
    assert scenarios[3].title == "The Data Breach Dilemma 3"
    assert scenarios[0].key_decision.startswith("Go public")

    config, schema = model_factory.requests[0]
    assert schema is SCENARIO_SCHEMA
    assert config.temperature == 0.8
    assert config.max_output_tokens == 8192
    prompt = chat_model.last_prompt
    assert "4 people" in prompt
    assert "Healthcare" in prompt


def test_domain_is_embedded_verbatim(scenario_generator, chat_model):
    chat_model.queue(batch())

    scenario_generator.generate_scenarios(2, "Fintech / Payments (EU)")

    assert "Fintech / Payments (EU)" in chat_model.last_prompt


@pytest.mark.parametrize("n", [9, 11])
def test_wrong_batch_size_rejects_the_whole_batch(scenario_generator, chat_model, n):
    chat_model.queue(batch(n))

    with pytest.raises(GenerationFailed):
        scenario_generator.generate_scenarios(4, "Healthcare")


def test_missing_field_rejects_the_whole_batch(scenario_generator, chat_model):
    items = batch()
    del items[5]["keyDecision"]
    chat_model.queue(items)

    with pytest.raises(GenerationFailed) as exc_info:
        scenario_generator.generate_scenarios(4, "Healthcare")
    assert "$[5].keyDecision: required field missing" in exc_info.value.problems


def test_blank_field_rejects_the_whole_batch(scenario_generator, chat_model):
    items = batch()
    items[2]["title"] = "   "
    chat_model.queue(items)

    with pytest.raises(GenerationFailed) as exc_info:
        scenario_generator.generate_scenarios(4, "Healthcare")
    assert exc_info.value.problems == ["$[2].title: empty"]


def test_generation_failed_is_a_malformed_output(scenario_generator, chat_model):
    chat_model.queue("no scenarios today")

    with pytest.raises(MalformedOutput):
        scenario_generator.generate_scenarios(4, "Healthcare")


def test_transport_failures_keep_their_class(scenario_generator, chat_model):
    chat_model.queue(ServiceUnavailable("backend unavailable"))

    with pytest.raises(TransportFailure):
        scenario_generator.generate_scenarios(4, "Healthcare")


@pytest.mark.parametrize(
    "team_size, domain",
    [(0, "Healthcare"), (-3, "Healthcare"), (True, "Healthcare"), ("4", "Healthcare"), (4, ""), (4, "   "), (4, None)],
)
def test_invalid_input_makes_no_model_call(scenario_generator, chat_model, team_size, domain):
    with pytest.raises(InvalidInput):
        scenario_generator.generate_scenarios(team_size, domain)
    assert chat_model.calls == []
