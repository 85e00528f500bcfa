# src/taskflow/llm/client.py

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Iterable
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..tasks.task_models import Task

logger = logging.getLogger(__name__)

_BAD_MODELS: dict[str, float] = {}  # model -> retry_at (monotonic)

ANALYSIS_SYSTEM_PROMPT = (
    "You are a productivity assistant. Analyze the task you are given and reply with "
    "a JSON object with the keys: priority (low|medium|high|urgent), estimatedTime "
    "(short string), subtasks (3-5 strings), tips (2-3 strings), category (string)."
)

RECOMMENDATIONS_SYSTEM_PROMPT = (
    "You are a productivity coach. Given a list of open tasks, recommend the three "
    "to focus on today, one per line, considering priority and due dates."
)

PROJECT_PLAN_SYSTEM_PROMPT = (
    "You are a project planning expert. Break the project down into phases of "
    "actionable tasks. Reply with a JSON object: "
    "{\"phases\": [{\"name\": \"phase name\", \"tasks\": [\"task\", ...]}, ...]}."
)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    s = raw.strip()
    if not s:
        return default
    try:
        return float(s)
    except ValueError:
        return default


def _timeout_from_env() -> httpx.Timeout:
    connect_s = _env_float("TASKFLOW_LLM_CONNECT_TIMEOUT_SECONDS", 5.0)
    read_s = _env_float("TASKFLOW_LLM_READ_TIMEOUT_SECONDS", 30.0)
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError, httpx.TimeoutException))


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "LLM API key is not set" in msg:
        return "AI features are not configured (missing API key). Set TASKFLOW_OPENAI_API_KEY in .env."
    if "LLM model list is empty" in msg:
        return "AI features are not configured (no models). Set TASKFLOW_LLM_MODELS in .env."
    return msg


def _tasks_context(tasks: Iterable[Task]) -> str:
    lines = []
    for i, t in enumerate(tasks, start=1):
        due = t.due_at.date().isoformat() if t.due_at is not None else "no due date"
        lines.append(f"{i}. {t.title} (priority: {t.priority.value}, due: {due})")
    return "\n".join(lines)


class OpenAITaskAnalyzer:
    """
    TaskAnalyzer backed by an OpenAI-compatible chat completions API.

    Behavior:
    - Tries models in the order from settings (TASKFLOW_LLM_MODELS).
    - 404 (model not available) -> remember for an hour, try next.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).
    - A reply that is not a JSON object is a failure (RuntimeError).
    """

    def __init__(self, settings, client: OpenAI | None = None) -> None:
        self._models: list[str] = [m.strip() for m in (getattr(settings, "llm_models", None) or []) if m.strip()]
        if not self._models:
            raise RuntimeError("LLM model list is empty. Set TASKFLOW_LLM_MODELS in your .env.")

        if client is None:
            api_key = getattr(settings, "openai_api_key", None)
            if not api_key or not str(api_key).strip():
                raise RuntimeError("LLM API key is not set. Set TASKFLOW_OPENAI_API_KEY in your .env.")
            base_url = (getattr(settings, "openai_base_url", "") or "").strip() or None
            # Retries disabled to allow quick fallback across models.
            client = OpenAI(
                base_url=base_url,
                api_key=str(api_key),
                timeout=_timeout_from_env(),
                max_retries=0,
            )
        self._client = client

    def _complete(self, messages: list[dict[str, str]], *, json_mode: bool) -> str:
        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = _BAD_MODELS.get(model)
            if retry_at is not None and retry_at > now:
                continue

            t0 = time.monotonic()
            try:
                kwargs: dict[str, Any] = {"model": model, "messages": messages}
                if json_mode:
                    kwargs["response_format"] = {"type": "json_object"}
                response = self._client.chat.completions.create(**kwargs)
                content = response.choices[0].message.content
                if not content:
                    last_error = RuntimeError(f"Model returned no content: {model}")
                    continue
                logger.info("LLM: completed with model=%s (%.2fs)", model, time.monotonic() - t0)
                return content

            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise RuntimeError(
                        "LLM authentication failed. Check your API key (TASKFLOW_OPENAI_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    _BAD_MODELS[model] = time.monotonic() + 3600.0
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise RuntimeError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise RuntimeError("LLM network/timeout error. Try again later or change models.") from last_error
            raise RuntimeError("All LLM models failed.") from last_error

        raise RuntimeError("All LLM models failed.")

    def _complete_json(self, messages: list[dict[str, str]], what: str) -> dict[str, Any]:
        raw = self._complete(messages, json_mode=True)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"LLM returned malformed JSON for {what}.") from e
        if not isinstance(data, dict):
            raise RuntimeError(f"LLM {what} is not a JSON object.")
        return data

    def analyze_task(self, title: str, description: str | None = None) -> dict[str, Any]:
        prompt = f"Title: {title}\nDescription: {description or 'No description provided'}"
        return self._complete_json(
            [
                {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "task analysis",
        )

    def daily_recommendations(self, tasks: Iterable[Task]) -> list[str]:
        context = _tasks_context(tasks)
        if not context:
            return []
        raw = self._complete(
            [
                {"role": "system", "content": RECOMMENDATIONS_SYSTEM_PROMPT},
                {"role": "user", "content": f"Here are my tasks:\n{context}\n\nWhat should I focus on today?"},
            ],
            json_mode=False,
        )
        return [line.strip() for line in raw.splitlines() if line.strip()]

    def plan_project(self, name: str, description: str | None = None) -> dict[str, Any]:
        """Phases with actionable tasks: {"phases": [{"name": ..., "tasks": [...]}, ...]}."""
        prompt = f"Project: {name}\nDescription: {description or 'No description provided'}"
        data = self._complete_json(
            [
                {"role": "system", "content": PROJECT_PLAN_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "project plan",
        )
        if not isinstance(data.get("phases"), list):
            raise RuntimeError("LLM project plan has no phases list.")
        return data
