"""
Mentor assistant bridge.

Builds the context payload sent to the mentor endpoint and parses its
server-sent-events reply stream. The endpoint is an OpenAI-style chat stream:
each ``data:`` line carries ``{"choices": [{"delta": {"content": ...}}]}`` and
the stream ends with ``data: [DONE]``.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from .models import Module, Step

HISTORY_LIMIT = 10
DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class MentorReply:
    """Assistant turn produced by one request.

    `failed` replies carry a user-facing apology instead of model output.
    `aborted` replies carry whatever arrived before the stream was stopped.
    """

    content: str
    failed: bool = False
    aborted: bool = False


def build_context(
    platform: str,
    module_name: str,
    step: Step | None,
    step_index: int,
    total_steps: int,
    completed_steps: Sequence[str],
) -> dict[str, Any]:
    """Return the learner context attached to every mentor request."""
    current: dict[str, str] | None = None
    if step is not None:
        current = {"title": step.title, "description": step.description}
        if step.tip:
            current["tip"] = step.tip
        if step.warning:
            current["warning"] = step.warning
    return {
        "platform": platform,
        "module": module_name,
        "currentStep": current,
        "stepIndex": step_index,
        "totalSteps": total_steps,
        "completedSteps": list(completed_steps),
    }


def build_request(history: Sequence[ChatMessage], user_message: str, context: dict[str, Any]) -> dict[str, Any]:
    """Return the request body: the last messages of history plus the new user message."""
    recent = [message.to_dict() for message in history[-HISTORY_LIMIT:]]
    recent.append({"role": "user", "content": user_message})
    return {"messages": recent, "context": context}


def apology(reason: str) -> str:
    return f"Sorry, I encountered an error: {reason}. Please try again."


def welcome_message(module_name: str) -> ChatMessage:
    return ChatMessage(
        role="assistant",
        content=(
            f"👋 Hi! I'm your AI mentor for {module_name}. I'll help you complete each step successfully. "
            "Feel free to ask me anything about the current step or DevOps best practices!"
        ),
    )


def step_context_message(step: Step, step_index: int) -> ChatMessage:
    parts = [f"📍 Now on Step {step_index + 1}: {step.title}", step.description]
    if step.tip:
        parts.append(f"💡 Tip: {step.tip}")
    if step.warning:
        parts.append(f"⚠️ Warning: {step.warning}")
    return ChatMessage(role="assistant", content="\n\n".join(parts))


class StreamParser:
    """Incremental parser for the mentor's event stream.

    Chunks may split lines anywhere. A data payload that is not valid JSON is
    held and joined with the next data payload; if the joined text is still
    invalid the held fragment is dropped.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._held: str | None = None
        self.content = ""
        self.done = False

    def feed(self, chunk: str) -> list[str]:
        """Consume a chunk and return the content deltas it completed."""
        if self.done:
            return []
        self._buffer += chunk
        deltas: list[str] = []
        while not self.done and "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            deltas.extend(self._handle_line(line))
        return deltas

    def close(self) -> list[str]:
        """Flush a trailing line that was not newline-terminated."""
        deltas: list[str] = []
        if self._buffer and not self.done:
            line, self._buffer = self._buffer, ""
            deltas = self._handle_line(line)
        if self._held is not None:
            logger.warning("Dropping incomplete mentor stream fragment")
            self._held = None
        return deltas

    def _handle_line(self, line: str) -> list[str]:
        if line.endswith("\r"):
            line = line[:-1]
        if not line.strip() or line.startswith(":") or not line.startswith(DATA_PREFIX):
            return []
        payload = line[len(DATA_PREFIX) :].strip()
        if payload == DONE_SENTINEL:
            self.done = True
            if self._held is not None:
                logger.warning("Dropping incomplete mentor stream fragment")
                self._held = None
            return []

        if self._held is not None:
            joined = self._held + payload
            self._held = None
            parsed = _loads(joined)
            if parsed is not None:
                return self._apply(parsed)
            logger.warning("Dropping malformed mentor stream fragment")

        parsed = _loads(payload)
        if parsed is None:
            self._held = payload
            return []
        return self._apply(parsed)

    def _apply(self, parsed: Any) -> list[str]:
        delta = _delta_content(parsed)
        if not delta:
            return []
        self.content += delta
        return [delta]


def _loads(payload: str) -> Any | None:
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return None


def _delta_content(parsed: Any) -> str:
    if not isinstance(parsed, dict):
        return ""
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class MentorClient:
    """Posts learner questions to the mentor endpoint and streams the reply."""

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = headers
        self._aborted = threading.Event()

    def abort(self) -> None:
        """Stop the in-flight reply; the partial content is returned without an error."""
        self._aborted.set()

    def close(self) -> None:
        self._client.close()

    def stream_reply(
        self,
        history: Sequence[ChatMessage],
        user_message: str,
        context: dict[str, Any],
        on_delta: Callable[[str], None] | None = None,
    ) -> MentorReply:
        self._aborted.clear()
        payload = build_request(history, user_message, context)
        parser = StreamParser()
        try:
            with self._client.stream("POST", self.url, json=payload, headers=self._headers) as response:
                if response.status_code >= 400:
                    response.read()
                    reason = _error_reason(response)
                    logger.warning("Mentor request failed with {}: {}", response.status_code, reason)
                    return MentorReply(content=apology(reason), failed=True)
                for chunk in response.iter_text():
                    if self._aborted.is_set():
                        logger.debug("Mentor reply aborted")
                        return MentorReply(content=parser.content, aborted=True)
                    for delta in parser.feed(chunk):
                        if on_delta is not None:
                            on_delta(delta)
                    if parser.done:
                        break
                for delta in parser.close():
                    if on_delta is not None:
                        on_delta(delta)
        except httpx.HTTPError as exc:
            if self._aborted.is_set():
                return MentorReply(content=parser.content, aborted=True)
            logger.warning("Mentor request error: {}", exc)
            return MentorReply(content=apology(str(exc) or type(exc).__name__), failed=True)
        return MentorReply(content=parser.content)


def _error_reason(response: httpx.Response) -> str:
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return "Failed to get response"
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return "Failed to get response"


@dataclass
class MentorConversation:
    """Chat transcript for one module, including the welcome and step-context turns."""

    client: MentorClient
    module: Module
    messages: list[ChatMessage] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.messages:
            self.messages.append(welcome_message(self.module.name))

    def note_step(self, step: Step, step_index: int) -> bool:
        """Append a step-context message unless the last assistant turn already covers the step."""
        last = self.messages[-1]
        if last.role != "assistant" or step.title in last.content:
            return False
        self.messages.append(step_context_message(step, step_index))
        return True

    def ask(
        self,
        question: str,
        context: dict[str, Any],
        on_delta: Callable[[str], None] | None = None,
    ) -> MentorReply | None:
        """Send a question and append the reply; blank questions are ignored."""
        question = question.strip()
        if not question:
            return None
        history = list(self.messages)
        self.messages.append(ChatMessage(role="user", content=question))
        reply = self.client.stream_reply(history, question, context, on_delta)
        if reply.content:
            self.messages.append(ChatMessage(role="assistant", content=reply.content))
        return reply
