import pytest
from google.api_core.exceptions import ServiceUnavailable
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from decision_sim import llm_client as llm_module
from decision_sim.exceptions import EmptyOutput, MalformedOutput, SafetyBlocked, TransportFailure
from decision_sim.llm_client import (
    GenerationConfig,
    StructuredLlmClient,
    VertexModelFactory,
    safety_thresholds_for,
)
from decision_sim.output_schema import STRING, SchemaField, object_schema

OPENING = object_schema("opening", SchemaField("openingPrompt", STRING))


def test_structured_reply_is_parsed_and_validated(llm_client, chat_model):
    chat_model.queue({"openingPrompt": "Welcome, team. What is your first move?"})

    result = llm_client.generate("system", "user", OPENING, GenerationConfig())

    assert result.data == {"openingPrompt": "Welcome, team. What is your first move?"}
    assert result.finish_reason == "STOP"
    messages = chat_model.calls[0]
    assert isinstance(messages[0], SystemMessage) and messages[0].content == "system"
    assert isinstance(messages[1], HumanMessage) and messages[1].content == "user"


def test_fenced_json_with_prose_is_accepted(llm_client, chat_model):
    chat_model.queue('Here you go:\n```json\n{"openingPrompt": "Ready?"}\n```')

    assert llm_client.generate("s", "u", OPENING).data == {"openingPrompt": "Ready?"}


def test_unparseable_reply_is_malformed(llm_client, chat_model):
    chat_model.queue("I would rather not answer in JSON today.")

    with pytest.raises(MalformedOutput) as exc_info:
        llm_client.generate("s", "u", OPENING)
    assert exc_info.value.raw_text == "I would rather not answer in JSON today."


def test_missing_required_field_is_malformed(llm_client, chat_model):
    chat_model.queue({"opening": "Ready?"})

    with pytest.raises(MalformedOutput) as exc_info:
        llm_client.generate("s", "u", OPENING)
    assert exc_info.value.problems == ["$.openingPrompt: required field missing"]


def test_transport_errors_are_classified(llm_client, chat_model):
    chat_model.queue(ServiceUnavailable("backend unavailable"))

    with pytest.raises(TransportFailure):
        llm_client.generate("s", "u", OPENING)


def test_timeouts_are_transport_failures(llm_client, chat_model):
    chat_model.queue(TimeoutError("deadline exceeded"))

    with pytest.raises(TransportFailure):
        llm_client.generate("s", "u")


def test_safety_finish_reason_is_classified(llm_client, chat_model):
    ratings = [{"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "probability_label": "HIGH", "blocked": True}]
    chat_model.queue(AIMessage(content="", response_metadata={"finish_reason": "SAFETY", "safety_ratings": ratings}))

    with pytest.raises(SafetyBlocked) as exc_info:
        llm_client.generate("s", "u", OPENING)
    assert exc_info.value.finish_reason == "SAFETY"
    assert exc_info.value.safety_ratings == ratings


def test_blocked_flag_is_classified(llm_client, chat_model):
    chat_model.queue(AIMessage(content="", response_metadata={"is_blocked": True}))

    with pytest.raises(SafetyBlocked):
        llm_client.generate("s", "u")


def test_empty_candidate_is_classified(llm_client, chat_model):
    chat_model.queue(AIMessage(content="", response_metadata={"finish_reason": "STOP"}))

    with pytest.raises(EmptyOutput):
        llm_client.generate("s", "u", OPENING)


def test_prompt_level_block_surfaces_as_empty_output(llm_client, chat_model):
    chat_model.queue(AIMessage(content="", response_metadata={}))

    with pytest.raises(EmptyOutput):
        llm_client.generate("s", "u", OPENING)


def test_unexpected_model_errors_are_not_reclassified(llm_client, chat_model):
    chat_model.queue(IndexError("list index out of range"))

    with pytest.raises(IndexError):
        llm_client.generate("s", "u")


def test_free_text_is_normalized(llm_client, chat_model):
    chat_model.queue('**Host:** "The board wants an answer. Who speaks first?"')

    result = llm_client.generate("s", "u")

    assert result.data == "The board wants an answer. Who speaks first?"
    assert result.text == '**Host:** "The board wants an answer. Who speaks first?"'


def test_free_text_that_cleans_to_nothing_is_empty(llm_client, chat_model):
    chat_model.queue("Host:")

    with pytest.raises(EmptyOutput):
        llm_client.generate("s", "u")


def test_no_retry_by_default(llm_client, chat_model):
    chat_model.queue(ServiceUnavailable("backend unavailable"), "never reached")

    with pytest.raises(TransportFailure):
        llm_client.generate("s", "u")
    assert len(chat_model.calls) == 1


def test_configured_retries_cover_transport_only(model_factory, chat_model):
    client = StructuredLlmClient(model_factory, max_attempts=3)

    chat_model.queue(ServiceUnavailable("backend unavailable"), "What now?")
    assert client.generate("s", "u").data == "What now?"
    assert len(chat_model.calls) == 2

    chat_model.queue("not json")
    with pytest.raises(MalformedOutput):
        client.generate("s", "u", OPENING)
    assert len(chat_model.calls) == 3

    chat_model.queue(AIMessage(content="", response_metadata={"finish_reason": "SAFETY"}), "unused")
    with pytest.raises(SafetyBlocked):
        client.generate("s", "u")
    assert len(chat_model.calls) == 4


def test_default_safety_thresholds_are_applied(llm_client, chat_model, model_factory):
    chat_model.queue("Go.")

    llm_client.generate("s", "u", None, GenerationConfig(temperature=0.8, max_output_tokens=1024, top_k=1, top_p=1.0))

    config, schema = model_factory.requests[0]
    assert schema is None
    assert config.temperature == 0.8
    assert config.top_k == 1
    assert config.safety_thresholds == safety_thresholds_for("BLOCK_MEDIUM_AND_ABOVE")
    assert len(config.safety_thresholds) == 4


def test_usage_is_accumulated(llm_client, chat_model):
    usage = {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15}
    chat_model.queue(
        AIMessage(content="One.", usage_metadata=usage, response_metadata={"finish_reason": "STOP"}),
        AIMessage(content="Two.", usage_metadata=usage, response_metadata={"finish_reason": "STOP"}),
    )

    first = llm_client.generate("s", "u")
    llm_client.generate("s", "u")

    assert first.usage == {"prompt_token_count": 10, "candidates_token_count": 5, "total_token_count": 15}
    assert llm_client.last_usage == {"prompt_token_count": 20, "candidates_token_count": 10, "total_token_count": 30}


class RecordingChatVertexAI:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        RecordingChatVertexAI.instances.append(self)


def test_vertex_factory_builds_once_per_config_and_schema(monkeypatch):
    RecordingChatVertexAI.instances = []
    monkeypatch.setattr(llm_module, "ChatVertexAI", RecordingChatVertexAI)
    factory = VertexModelFactory(project="demo-project", region="us-central1", model_name="gemini-2.5-flash-lite", timeout=30)
    config = GenerationConfig(
        temperature=0.5,
        max_output_tokens=8192,
        safety_thresholds=safety_thresholds_for("BLOCK_ONLY_HIGH"),
    )

    first = factory(config, OPENING)
    again = factory(config, OPENING)
    free_text = factory(config, None)

    assert first is again
    assert free_text is not first
    kwargs = first.kwargs
    assert kwargs["project"] == "demo-project"
    assert kwargs["model_name"] == "gemini-2.5-flash-lite"
    assert kwargs["timeout"] == 30
    assert kwargs["max_retries"] == 0
    assert kwargs["response_mime_type"] == "application/json"
    assert kwargs["response_schema"] == OPENING.to_response_schema()
    assert len(kwargs["safety_settings"]) == 4
    assert "response_schema" not in free_text.kwargs
    assert "top_k" not in free_text.kwargs
