import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, TypeVar

from google.api_core.exceptions import GoogleAPICallError, RetryError
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_vertexai import ChatVertexAI, HarmBlockThreshold, HarmCategory

from decision_sim.base_utils import BaseUtils
from decision_sim.exceptions import (
    EmptyOutput,
    GenerationError,
    MalformedOutput,
    SafetyBlocked,
    TransportFailure,
)
from decision_sim.output_schema import SchemaField
from decision_sim.text_normalization import normalize_host_line

T = TypeVar("T")

logger = logging.getLogger("decision_sim.llm")

DEFAULT_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

BLOCKING_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}


# Global backoff state (shared across all clients)
_global_backoff_lock = threading.Lock()
_global_wait_until = 0.0
_global_backoff_seconds = 30.0
_GLOBAL_BACKOFF_MAX = 600.0


def _is_resource_exhausted_error(e: BaseException) -> bool:
    msg = str(e)
    return (
        "429" in msg
        and (
            "RESOURCE_EXHAUSTED" in msg
            or "Resource has been exhausted" in msg
            or "Too Many Requests" in msg
        )
    )


def call_with_retries_sync(
    fn: Callable[[], T],
    *,
    attempts: int = 1,
    log: Callable[[str], None] | None = None,
) -> T:
    """
    Run a sync model call, retrying TransportFailure only.

    A 429 pushes a shared backoff window that every client respects before its
    next attempt. Safety blocks, empty and malformed replies are raised at once.
    """
    global _global_wait_until, _global_backoff_seconds

    def _respect_global_backoff() -> None:
        while True:
            with _global_backoff_lock:
                wait = _global_wait_until - time.monotonic()
            if wait <= 0:
                return
            time.sleep(min(wait, 1.0))

    def _register_429_and_get_delay() -> float:
        global _global_wait_until, _global_backoff_seconds
        with _global_backoff_lock:
            now = time.monotonic()
            base = _global_backoff_seconds
            delay = random.uniform(base * 0.95, base * 1.35)
            _global_backoff_seconds = min(_global_backoff_seconds * 2, _GLOBAL_BACKOFF_MAX)
            _global_wait_until = max(_global_wait_until, now + delay)
            return delay

    attempts = max(1, attempts)
    for attempt in range(attempts):
        if attempts > 1:
            _respect_global_backoff()
        start_time = time.time()
        try:
            result = fn()
            with _global_backoff_lock:
                _global_backoff_seconds = max(1.0, _global_backoff_seconds * 0.5)
            return result
        except TransportFailure as e:
            elapsed = time.time() - start_time
            if attempt + 1 >= attempts:
                raise
            if _is_resource_exhausted_error(e.__cause__ or e):
                delay = _register_429_and_get_delay()
                msg = f"Attempt {attempt+1} got 429, backing off ~{delay:.1f}s."
            else:
                msg = f"Attempt {attempt+1} failed."
            if log:
                log(f"{msg} (elapsed={elapsed:.2f}s): {e}")


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.7
    max_output_tokens: int = 2048
    top_p: float | None = None
    top_k: int | None = None
    # ((HarmCategory name, HarmBlockThreshold name), ...); empty means client defaults
    safety_thresholds: tuple[tuple[str, str], ...] = ()


@dataclass
class StructuredResult:
    data: Any
    text: str
    finish_reason: str | None = None
    usage: Dict[str, int] = field(default_factory=dict)


def safety_thresholds_for(threshold: str, categories=DEFAULT_SAFETY_CATEGORIES) -> tuple[tuple[str, str], ...]:
    return tuple((category, threshold) for category in categories)


class VertexModelFactory:
    """
    Builds one ChatVertexAI per (generation config, output schema) and reuses it.
    """

    def __init__(self, *, project: str, region: str, model_name: str, timeout: float | None = None):
        self.project = project
        self.region = region
        self.model_name = model_name
        self.timeout = timeout
        self._lock = threading.Lock()
        self._models: dict[tuple, ChatVertexAI] = {}

    def _safety_settings(self, config: GenerationConfig) -> dict:
        return {
            HarmCategory[category]: HarmBlockThreshold[threshold]
            for category, threshold in config.safety_thresholds
        }

    def __call__(self, config: GenerationConfig, output_schema: SchemaField | None):
        key = (config, output_schema)
        with self._lock:
            model = self._models.get(key)
            if model is not None:
                return model

            kwargs: Dict[str, Any] = {
                "project": self.project,
                "location": self.region,
                "model_name": self.model_name,
                "temperature": config.temperature,
                "max_output_tokens": config.max_output_tokens,
                "safety_settings": self._safety_settings(config),
                "timeout": self.timeout,
                "max_retries": 0,
            }
            if config.top_p is not None:
                kwargs["top_p"] = config.top_p
            if config.top_k is not None:
                kwargs["top_k"] = config.top_k
            if output_schema is not None:
                kwargs["response_mime_type"] = "application/json"
                kwargs["response_schema"] = output_schema.to_response_schema()

            model = ChatVertexAI(**kwargs)
            self._models[key] = model
            return model


class BaseLlmClient:
    """
    Usage accounting across calls.
    """

    last_usage: Optional[Dict[str, int]]

    def _merge_vertex_usage(self, usage_metadata: Any) -> Dict[str, int]:
        if not usage_metadata:
            return {}

        def get(*keys: str) -> int:
            for k in keys:
                if isinstance(usage_metadata, dict):
                    v = usage_metadata.get(k)
                else:
                    v = getattr(usage_metadata, k, None)
                if v:
                    return int(v)
            return 0

        inc = {
            "prompt_token_count": get("prompt_token_count", "input_tokens"),
            "candidates_token_count": get("candidates_token_count", "output_tokens"),
            "total_token_count": get("total_token_count", "total_tokens"),
        }
        if self.last_usage is None:
            self.last_usage = dict(inc)
        else:
            for k, v in inc.items():
                self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)
        return inc


class StructuredLlmClient(BaseLlmClient, BaseUtils):
    """
    One stateless call per generate():

        result = client.generate(system_instruction, user_prompt, schema, config)

    - with a schema: JSON reply, parsed and validated against the schema
    - without: free text, cleaned with normalize_host_line
    Failures surface as TransportFailure / SafetyBlocked / EmptyOutput / MalformedOutput.
    """

    def __init__(
        self,
        model_factory: Callable[[GenerationConfig, SchemaField | None], Any],
        *,
        default_safety_thresholds: tuple[tuple[str, str], ...] = safety_thresholds_for("BLOCK_MEDIUM_AND_ABOVE"),
        max_attempts: int = 1,
    ):
        self.model_factory = model_factory
        self.default_safety_thresholds = default_safety_thresholds
        self.max_attempts = max_attempts
        self.last_usage: Optional[Dict[str, int]] = None

    def _effective_config(self, config: GenerationConfig) -> GenerationConfig:
        if config.safety_thresholds:
            return config
        return GenerationConfig(
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            top_p=config.top_p,
            top_k=config.top_k,
            safety_thresholds=self.default_safety_thresholds,
        )

    def _finish_reason(self, metadata: dict) -> str | None:
        reason = metadata.get("finish_reason")
        if reason is None:
            return None
        name = getattr(reason, "name", None) or str(reason)
        return name.split(".")[-1].upper()

    def _check_blocked(self, metadata: dict, finish_reason: str | None) -> None:
        if metadata.get("is_blocked") or finish_reason in BLOCKING_FINISH_REASONS:
            ratings = metadata.get("safety_ratings") or []
            raise SafetyBlocked(
                f"Model output blocked by content policy (finish_reason={finish_reason}, safety_ratings={ratings})",
                finish_reason=finish_reason,
                safety_ratings=ratings,
            )

    def _invoke_once(self, model, messages) -> tuple[str, str | None, Dict[str, int]]:
        """
        Single model call without retries; returns (text, finish_reason, usage).
        """
        try:
            resp = model.invoke(messages)
        except GenerationError:
            raise
        except (GoogleAPICallError, RetryError, TimeoutError, ConnectionError) as e:
            raise TransportFailure(f"Model call failed: {e}") from e

        metadata = getattr(resp, "response_metadata", None) or {}
        usage_md = getattr(resp, "usage_metadata", None) or metadata.get("usage_metadata")
        usage = self._merge_vertex_usage(usage_md)

        finish_reason = self._finish_reason(metadata)
        self._check_blocked(metadata, finish_reason)

        text = resp if isinstance(resp, str) else getattr(resp, "content", "")
        if isinstance(text, list):
            text = "".join(part if isinstance(part, str) else str(part.get("text", "")) for part in text)
        # a prompt-level block comes back as an empty message without a
        # blocking finish_reason, so it surfaces here as EmptyOutput
        if not text or not str(text).strip():
            raise EmptyOutput(f"Model returned an empty candidate (finish_reason={finish_reason})")
        return str(text), finish_reason, usage

    def _parse_structured(self, text: str, output_schema: SchemaField):
        try:
            data = self.load_structured_json(text)
        except ValueError as e:
            raise MalformedOutput(f"Model reply is not valid JSON: {e}", raw_text=text) from e

        problems = output_schema.validate(data)
        if problems:
            raise MalformedOutput(
                f"Model reply does not match schema '{output_schema.name}': {'; '.join(problems)}",
                raw_text=text,
                problems=problems,
            )
        return data

    def generate(
        self,
        system_instruction: str,
        user_prompt: str,
        output_schema: SchemaField | None = None,
        config: GenerationConfig | None = None,
    ) -> StructuredResult:
        config = self._effective_config(config or GenerationConfig())
        model = self.model_factory(config, output_schema)
        messages = [
            SystemMessage(content=system_instruction),
            HumanMessage(content=user_prompt),
        ]
        schema_name = output_schema.name if output_schema is not None else "free_text"

        try:
            text, finish_reason, usage = call_with_retries_sync(
                lambda: self._invoke_once(model, messages),
                attempts=self.max_attempts,
                log=lambda msg: self.color_print(f"[LLM-RETRY] {msg}", color="yellow", level=logging.WARNING),
            )
        except GenerationError as e:
            self.color_print(f"[LLM] {schema_name}: {e.kind}: {e}", color="red", level=logging.WARNING)
            raise

        logger.info("[LLM] %s ok (finish_reason=%s, usage=%s)", schema_name, finish_reason, usage)

        if output_schema is None:
            cleaned = normalize_host_line(text)
            if not cleaned:
                raise EmptyOutput("Model reply was empty after clean-up")
            return StructuredResult(data=cleaned, text=text, finish_reason=finish_reason, usage=usage)

        try:
            data = self._parse_structured(text, output_schema)
        except MalformedOutput as e:
            self.color_print(f"[LLM] {schema_name}: {e}\n--- raw reply ---\n{text}", color="red", level=logging.WARNING)
            raise
        return StructuredResult(data=data, text=text, finish_reason=finish_reason, usage=usage)
