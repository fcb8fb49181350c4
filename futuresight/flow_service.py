"""AI flow gateway.

Runs a named flow end to end: validate the payload, pick the provider for the
caller's credential, render the prompt, make a single LLM call, validate the
output shape, and map any failure onto the flow's failure policy.
"""

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from .calendar_utils import resolve_timezone, utc_now_iso
from .exceptions import (
    FAILURE_MESSAGES,
    FailureKind,
    FlowFailure,
    LLMError,
    classify_failure,
)
from .flows import FlowDefinition, get_flow
from .llm_service import LLMProvider, get_provider

logger = logging.getLogger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def parse_flow_output(flow: FlowDefinition, text: str | None) -> dict[str, Any]:
    """Validate raw model text against the flow's output model.

    Raises:
        ValueError: If the text is empty or does not match the output shape
    """
    if not text or not text.strip():
        raise ValueError("empty response")

    if flow.text_field:
        data: Any = {flow.text_field: text}
    else:
        match = JSON_OBJECT_PATTERN.search(text)
        if not match:
            raise ValueError("no JSON object in response")
        data = json.loads(match.group())

    # pydantic's ValidationError is a ValueError
    result = flow.output_model.model_validate(data)
    return result.model_dump(exclude_none=True)


def format_chat_history(messages: list[dict[str, Any]] | None) -> str:
    """Render chat messages as 'role: content' lines."""
    if not messages:
        return ""
    lines = []
    for message in messages:
        role = message.get("role") or "user"
        content = message.get("content") or ""
        lines.append(f"{role}: {content}")
    return "\n".join(lines)


class FlowService:
    """Invokes AI flows against an LLM provider.

    The provider factory receives the caller's API key (or None) on every
    call; credentials are never stored on the service.
    """

    def __init__(self, provider_factory: Callable[[str | None], LLMProvider] | None = None):
        self.provider_factory = provider_factory or get_provider

    async def invoke(
        self,
        flow_name: str,
        payload: dict[str, Any],
        api_key: str | None = None,
    ) -> dict[str, Any]:
        """Run a flow once.

        Args:
            flow_name: Registered flow name (see flows.FLOWS)
            payload: Flow input fields
            api_key: Optional caller-supplied LLM key for this call only

        Returns:
            The validated output fields, or the flow's fallback result

        Raises:
            FlowRequestError: If the flow is unknown or the payload is invalid
            FlowFailure: If the call fails and the flow has no fallback
        """
        flow = get_flow(flow_name)
        fields = flow.prepare_fields(payload)
        provider = self.provider_factory(api_key or None)

        try:
            text = await provider.generate(
                flow.system_prompt,
                flow.render(fields),
                max_tokens=flow.max_tokens,
                temperature=flow.temperature,
                json_output=flow.json_output,
            )
        except Exception as e:
            kind = classify_failure(e)
            logger.warning(
                "Flow %s failed (%s): %s", flow.name, kind.value, e,
                exc_info=not isinstance(e, LLMError),
            )
            return self._resolve_failure(flow, kind)

        try:
            return parse_flow_output(flow, text)
        except ValueError as e:
            logger.warning("Flow %s returned invalid output: %s", flow.name, e)
            return self._resolve_failure(flow, FailureKind.INVALID_OUTPUT)

    def _resolve_failure(self, flow: FlowDefinition, kind: FailureKind) -> dict[str, Any]:
        if flow.on_failure == "fallback" and flow.fallback is not None:
            logger.info("Flow %s answered with fallback after %s", flow.name, kind.value)
            return dict(flow.fallback)

        if kind == FailureKind.INVALID_OUTPUT:
            message = f"The AI model did not return a valid {flow.output_label}."
        else:
            message = FAILURE_MESSAGES[kind]
        raise FlowFailure(kind, message, flow=flow.name)

    # ========== Flow Operations ==========

    async def generate_motivational_quote(
        self, topic: str, api_key: str | None = None
    ) -> dict[str, Any]:
        """Generate a motivational quote about a topic."""
        return await self.invoke("motivational_quote", {"topic": topic}, api_key)

    async def summarize_news(
        self, title: str, content: str, api_key: str | None = None
    ) -> dict[str, Any]:
        """Summarize a news article from its title and content."""
        return await self.invoke(
            "summarize_news", {"title": title, "content": content}, api_key
        )

    async def summarize_email(
        self, subject: str, snippet: str, api_key: str | None = None
    ) -> dict[str, Any]:
        """Summarize an email, highlighting questions, actions and deadlines."""
        return await self.invoke(
            "summarize_email", {"subject": subject, "snippet": snippet}, api_key
        )

    async def summarize_text(self, text: str, api_key: str | None = None) -> dict[str, Any]:
        """Summarize arbitrary text into one paragraph."""
        return await self.invoke("summarize_text", {"text": text}, api_key)

    async def generate_greeting(self, name: str, api_key: str | None = None) -> dict[str, Any]:
        """Generate a greeting phrase; falls back to 'Hello,'."""
        return await self.invoke("generate_greeting", {"name": name}, api_key)

    async def converse(
        self,
        prompt: str,
        chat_history: list[dict[str, Any]] | None = None,
        api_key: str | None = None,
    ) -> dict[str, Any]:
        """Answer a chat message given the previous conversation.

        Never raises on LLM failures; the canned apology is returned instead.
        """
        payload = {"prompt": prompt, "history": format_chat_history(chat_history)}
        return await self.invoke("conversational_agent", payload, api_key)

    async def create_event_from_prompt(
        self,
        prompt: str,
        timezone: str | None = None,
        api_key: str | None = None,
    ) -> dict[str, Any]:
        """Extract a structured calendar event from a natural language request.

        Args:
            prompt: e.g. "lunch with Sam tomorrow at noon"
            timezone: IANA timezone of the user; unknown names fall back to UTC
            api_key: Optional caller-supplied LLM key

        Returns:
            Dict with 'title', 'date', 'isAllDay' and any of 'endDate',
            'notes', 'location', 'reminder'
        """
        payload = {
            "prompt": prompt,
            "timezone": resolve_timezone(timezone),
            "current_date": utc_now_iso(),
        }
        return await self.invoke("create_event", payload, api_key)


# ============================================================================
# Singleton Access
# ============================================================================

_flow_service: FlowService | None = None


def get_flow_service() -> FlowService:
    """Get or create the singleton FlowService instance."""
    global _flow_service
    if _flow_service is None:
        _flow_service = FlowService()
    return _flow_service
