# generator.py
# Homeostat - Generator bridge (the agent's "mouth")
#
# Responsibility:
#   - Take a DriveState snapshot + what is being asked (reply / goal / free thought)
#   - Build a small system prompt describing the current drives
#   - Call an OpenAI-compatible chat/completions endpoint (LM Studio, Ollama, ...)
#   - Return a GeneratorResult: spoken text, private thought, optional mood shift
#
# This module does NOT:
#   - Decide whether anything gets said (that is the SpeechGate)
#   - Touch the DriveState (the orchestrator turns results into events)
#
# Failures raise GeneratorError so the orchestrator can report them.

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from homeostat.cortex.speech.speech_gate import ExpressionContext
from homeostat.errors import GeneratorError
from homeostat.kernel.bounds import as_number
from homeostat.kernel.state import DriveState, Goal


logger = logging.getLogger(__name__)


# -----------------------------
# Data
# -----------------------------

@dataclass(frozen=True)
class GenerationRequest:
    snapshot: DriveState
    context: ExpressionContext
    user_text: Optional[str] = None
    goal: Optional[Goal] = None
    memories: Sequence[str] = ()


@dataclass(frozen=True)
class GeneratorResult:
    response_text: str
    internal_thought: str = ""
    mood_shift: Optional[Dict[str, float]] = None


class Generator(Protocol):
    async def generate(self, request: GenerationRequest) -> GeneratorResult:
        ...


# -----------------------------
# Config
# -----------------------------

@dataclass
class LlmConfig:
    base_url: str = "http://localhost:1234/v1/chat/completions"
    model: str = "qwen2.5-7b-instruct"
    api_key: Optional[str] = None
    max_tokens: int = 400
    base_temperature: float = 0.7
    timeout_seconds: int = 60
    persona: str = "You are a curious, calm companion who thinks out loud now and then."
    extra_headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, prefix: str = "HOMEOSTAT_LLM_") -> "LlmConfig":
        """Override defaults from HOMEOSTAT_LLM_URL / _MODEL / _API_KEY / _TIMEOUT."""
        cfg = cls()
        cfg.base_url = os.environ.get(prefix + "URL", cfg.base_url)
        cfg.model = os.environ.get(prefix + "MODEL", cfg.model)
        cfg.api_key = os.environ.get(prefix + "API_KEY", cfg.api_key)
        timeout = os.environ.get(prefix + "TIMEOUT")
        if timeout:
            try:
                cfg.timeout_seconds = int(timeout)
            except ValueError:
                logger.warning("Ignoring non-integer %sTIMEOUT=%r", prefix, timeout)
        return cfg


# -----------------------------
# LlmGenerator
# -----------------------------

class LlmGenerator:
    """
    Generator backed by a local or remote chat model.

        generator = LlmGenerator(LlmConfig.from_env())
        result = await generator.generate(GenerationRequest(snapshot, ExpressionContext.USER_REPLY, "hi"))

    The blocking HTTP call runs in a worker thread; the orchestrator puts
    its own watchdog around generate().
    """

    def __init__(self, config: Optional[LlmConfig] = None):
        self.config = config or LlmConfig()

    async def generate(self, request: GenerationRequest) -> GeneratorResult:
        messages = self.build_messages(request)
        raw = await asyncio.to_thread(self._call_llm, messages)
        return self._parse_result(self._extract_reply_text(raw))

    # ------------------------------------------------------------------
    # Message building
    # ------------------------------------------------------------------

    def build_messages(self, request: GenerationRequest) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": self._build_rules()},
            {"role": "system", "content": self._build_state_block(request)},
        ]

        for turn in request.snapshot.conversation[-10:]:
            if turn.kind != "speech":
                continue
            messages.append({"role": turn.role, "content": turn.text})

        prompt = self._build_prompt(request)
        # the reply case usually has the user turn in the conversation already
        if not (messages[-1]["role"] == "user" and messages[-1]["content"] == prompt):
            messages.append({"role": "user", "content": prompt})
        return messages

    def _build_rules(self) -> str:
        return "\n".join([
            self.config.persona,
            "Answer ONLY with a JSON object of the form:",
            '{"response_text": "...", "internal_thought": "...", '
            '"mood_shift": {"fear_delta": 0.0, "curiosity_delta": 0.0}}',
            "response_text is what you say out loud; keep it short.",
            "internal_thought is private and never shown to the user.",
            "mood_shift is optional; deltas are small numbers between -0.3 and 0.3.",
        ])

    def _build_state_block(self, request: GenerationRequest) -> str:
        s = request.snapshot
        lines = [
            "Current internal state (context only, do not restate it):",
            f"- Energy: {s.metabolic.energy:.0f}/100{' (sleeping)' if s.metabolic.is_sleeping else ''}",
            f"- Curiosity: {s.affect.curiosity:.2f}, fear: {s.affect.fear:.2f}, "
            f"frustration: {s.affect.frustration:.2f}, satisfaction: {s.affect.satisfaction:.2f}",
            f"- Dopamine: {s.chemistry.dopamine:.0f}, serotonin: {s.chemistry.serotonin:.0f}",
            f"- Unanswered utterances in a row: {s.social.consecutive_without_response}",
            f"- Style: {'poetic' if s.poetic_mode else 'plain, simple words'}",
        ]
        if request.memories:
            lines.append("")
            lines.append("Things you remember that may be relevant:")
            lines.extend(f"- {m}" for m in request.memories)
        return "\n".join(lines)

    def _build_prompt(self, request: GenerationRequest) -> str:
        if request.context == ExpressionContext.USER_REPLY:
            return request.user_text or ""
        if request.context == ExpressionContext.GOAL_EXECUTED and request.goal is not None:
            return f"(No new message from the user.) Work toward your goal: {request.goal.description}"
        return "(No new message from the user.) Share a short thought if you have one worth saying."

    # ------------------------------------------------------------------
    # LLM call
    # ------------------------------------------------------------------

    def _call_llm(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.base_temperature,
        }

        headers = {
            "Content-Type": "application/json",
        }
        headers.update(self.config.extra_headers)
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        try:
            response = requests.post(
                self.config.base_url,
                headers=headers,
                data=json.dumps(payload),
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.exception("Error when calling LLM backend: %s", e)
            raise GeneratorError(f"LLM backend unreachable: {e}") from e

        if not response.ok:
            logger.error("LLM HTTP error %s: %s", response.status_code, response.text[:500])
            raise GeneratorError(f"LLM HTTP error {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            logger.exception("Failed to parse LLM JSON response: %s", e)
            raise GeneratorError("LLM response is not JSON") from e

    # ------------------------------------------------------------------
    # Response extraction
    # ------------------------------------------------------------------

    def _extract_reply_text(self, raw: Dict[str, Any]) -> str:
        """
        Extract first choice text from OpenAI/LM-Studio compatible response.
        """
        choices = raw.get("choices") if isinstance(raw, dict) else None
        if not choices or not isinstance(choices[0], dict):
            raise GeneratorError("LLM response has no choices")
        message = choices[0].get("message") or {}
        content = message.get("content") or ""
        if not isinstance(content, str):
            raise GeneratorError("LLM message content is not text")
        return content

    def _parse_result(self, content: str) -> GeneratorResult:
        text = content.strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]
            text = text.strip()

        try:
            data = json.loads(text)
        except ValueError:
            # model ignored the format; treat everything as speech
            logger.debug("LLM reply was not JSON, using it verbatim")
            return GeneratorResult(response_text=content.strip())

        if not isinstance(data, dict):
            return GeneratorResult(response_text=content.strip())

        response_text = data.get("response_text")
        internal_thought = data.get("internal_thought")
        return GeneratorResult(
            response_text=response_text.strip() if isinstance(response_text, str) else "",
            internal_thought=internal_thought.strip() if isinstance(internal_thought, str) else "",
            mood_shift=_mood_shift(data.get("mood_shift")),
        )


def _mood_shift(raw: Any) -> Optional[Dict[str, float]]:
    if not isinstance(raw, dict):
        return None
    shift: Dict[str, float] = {}
    for key in ("fear_delta", "curiosity_delta"):
        number = as_number(raw.get(key))
        if number is not None:
            shift[key] = number
    return shift or None
