"""Pytest fixtures and sample data for FutureSight tests."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from futuresight.flow_service import FlowService

# ============================================================================
# Sample Calendar Data
# ============================================================================


def _ics(*lines: str) -> str:
    """Join iCalendar lines with CRLF, as exporters do."""
    return "\r\n".join(lines) + "\r\n"


ONE_EVENT_ICS = _ics(
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//FutureSight//Tests//EN",
    "BEGIN:VEVENT",
    "UID:standup-001@example.com",
    "DTSTAMP:20240110T090000Z",
    "DTSTART:20240115T100000Z",
    "DTEND:20240115T103000Z",
    "SUMMARY:Team Standup",
    "DESCRIPTION:Daily standup meeting",
    "LOCATION:Zoom",
    "END:VEVENT",
    "END:VCALENDAR",
)

# DESCRIPTION is folded in the middle of a word
FOLDED_EVENT_ICS = _ics(
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//FutureSight//Tests//EN",
    "BEGIN:VEVENT",
    "UID:review-001@example.com",
    "DTSTAMP:20240110T090000Z",
    "DTSTART:20240116T140000Z",
    "DTEND:20240116T160000Z",
    "SUMMARY:Project Review",
    "DESCRIPTION:Discuss the quarterly road",
    " map and assign owners",
    "END:VEVENT",
    "END:VCALENDAR",
)

ALL_DAY_EVENT_ICS = _ics(
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//FutureSight//Tests//EN",
    "BEGIN:VEVENT",
    "UID:holiday-001@example.com",
    "DTSTAMP:20240110T090000Z",
    "DTSTART;VALUE=DATE:20240120",
    "DTEND;VALUE=DATE:20240121",
    "SUMMARY:Company Holiday",
    "END:VEVENT",
    "END:VCALENDAR",
)

RECURRING_WITH_OVERRIDE_ICS = _ics(
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//FutureSight//Tests//EN",
    "BEGIN:VEVENT",
    "UID:weekly-001@example.com",
    "DTSTAMP:20240110T090000Z",
    "DTSTART:20240115T150000Z",
    "DTEND:20240115T153000Z",
    "RRULE:FREQ=WEEKLY;BYDAY=MO",
    "SUMMARY:Weekly 1:1",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:weekly-001@example.com",
    "DTSTAMP:20240110T090000Z",
    "RECURRENCE-ID:20240122T150000Z",
    "DTSTART:20240122T160000Z",
    "DTEND:20240122T163000Z",
    "SUMMARY:Weekly 1:1 (moved)",
    "END:VEVENT",
    "END:VCALENDAR",
)

NO_EVENTS_ICS = _ics(
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//FutureSight//Tests//EN",
    "X-WR-CALNAME:Empty Calendar",
    "BEGIN:VTIMEZONE",
    "TZID:America/New_York",
    "BEGIN:STANDARD",
    "DTSTART:19701101T020000",
    "TZOFFSETFROM:-0400",
    "TZOFFSETTO:-0500",
    "TZNAME:EST",
    "END:STANDARD",
    "END:VTIMEZONE",
    "END:VCALENDAR",
)


# ============================================================================
# Sample LLM Output
# ============================================================================

SAMPLE_OUTPUTS = {
    "motivational_quote": '{"quote": "Small steps every day add up to big results."}',
    "summarize_news": '{"summary": "A new open-source model beats benchmarks."}',
    "summarize_email": '{"summary": "Alice asks for the report by Friday."}',
    "summarize_text": '{"summary": "The text explains line folding."}',
    "generate_greeting": '{"greeting": "Welcome back,"}',
    "conversational_agent": "Sure! Your next meeting is at 2pm.",
    "create_event": (
        '{"title": "Team planning", "date": "2024-07-16T14:00:00.000-07:00", '
        '"endDate": "2024-07-16T15:00:00.000-07:00", "isAllDay": false, '
        '"reminder": {"enabled": true}}'
    ),
}


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_provider():
    """Mock LLMProvider returning a quote by default."""
    provider = AsyncMock()
    provider.generate.return_value = SAMPLE_OUTPUTS["motivational_quote"]
    return provider


@pytest.fixture
def provider_keys():
    """API keys seen by the provider factory, in call order."""
    return []


@pytest.fixture
def flow_service(mock_provider, provider_keys):
    """FlowService whose provider factory records the API key it is given."""

    def factory(api_key):
        provider_keys.append(api_key)
        return mock_provider

    return FlowService(provider_factory=factory)


@pytest.fixture
def mock_flow_service():
    """Mock FlowService with default responses."""
    with patch("futuresight.server.get_flow_service") as mock_get:
        mock_service = AsyncMock()

        # Default responses
        mock_service.generate_motivational_quote.return_value = {
            "quote": "Small steps every day add up to big results.",
        }
        mock_service.summarize_news.return_value = {
            "summary": "A new open-source model beats benchmarks.",
        }
        mock_service.summarize_email.return_value = {
            "summary": "Alice asks for the report by Friday.",
        }
        mock_service.summarize_text.return_value = {
            "summary": "The text explains line folding.",
        }
        mock_service.generate_greeting.return_value = {"greeting": "Welcome back,"}
        mock_service.converse.return_value = {
            "response": "Sure! Your next meeting is at 2pm.",
        }
        mock_service.create_event_from_prompt.return_value = {
            "title": "Team planning",
            "date": "2024-07-16T14:00:00.000-07:00",
            "endDate": "2024-07-16T15:00:00.000-07:00",
            "isAllDay": False,
            "reminder": {"enabled": True},
        }

        mock_get.return_value = mock_service
        yield mock_service


@pytest.fixture
def client(mock_flow_service):
    """FastAPI test client with a mocked flow service."""
    from futuresight.server import app
    return TestClient(app)


@pytest.fixture
def client_no_mocks():
    """FastAPI test client without mocked dependencies."""
    from futuresight.server import app
    return TestClient(app)


@pytest.fixture
def sample_outputs():
    """Well-formed raw LLM output per flow."""
    return dict(SAMPLE_OUTPUTS)


@pytest.fixture
def ics_samples():
    """Sample .ics documents keyed by scenario."""
    return {
        "one_event": ONE_EVENT_ICS,
        "folded": FOLDED_EVENT_ICS,
        "all_day": ALL_DAY_EVENT_ICS,
        "recurring": RECURRING_WITH_OVERRIDE_ICS,
        "no_events": NO_EVENTS_ICS,
    }
