"""Pytest fixtures and configuration for Agent CRM Engine tests."""

import os
import pytest
from typing import Any, Callable, Dict, Generator

from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("RESEND_API_KEY", "re_test")
os.environ.setdefault("DEBUG", "true")

from fakes import FakeEmail, FakeInference, FakeSupabase, days_ago  # noqa: E402

from agent_crm.core.database import DatabaseService  # noqa: E402
from agent_crm.intelligence.signals import SignalExtractor  # noqa: E402
from agent_crm.services.actions import ActionQueue  # noqa: E402
from agent_crm.services.deals import DealService  # noqa: E402
from agent_crm.services.ledger import AgentRunLedger  # noqa: E402
from agent_crm.services.meetings import MeetingController  # noqa: E402
from agent_crm.services.replies import ReplyHandler  # noqa: E402


# ===========================================
# Sample Data Fixtures
# ===========================================

@pytest.fixture
def sample_transcript() -> str:
    """Sample live meeting transcript."""
    return """
Agent: Thanks for joining, Dana. Last time you mentioned your team loses track of follow-ups.
Prospect: Right. We have three reps and nobody knows who emailed whom last.
Agent: Our pipeline view shows every touchpoint per lead. Would a two-week pilot help?
Prospect: Maybe. Pricing is my main concern - we were quoted a lot by another vendor.
Agent: Understood. Let me walk you through the starter tier.
    """


@pytest.fixture
def sample_transcript_analysis() -> str:
    """Well-formed transcript analysis wrapped in a code fence."""
    return """```json
{
  "confidence": 0.8,
  "sentiment": "positive",
  "concerns": ["pricing"],
  "nextActions": ["send pricing sheet"],
  "alertManager": { "needed": false, "reason": "conversation going well" }
}
```"""


@pytest.fixture
def low_confidence_analysis() -> str:
    """Analysis that should trigger a manager alert."""
    return (
        '{"confidence": 0.3, "sentiment": "negative", "concerns": ["budget"], '
        '"nextActions": [], "alertManager": {"needed": true, "reason": "Prospect is comparing vendors"}}'
    )


# ===========================================
# Fake Backends
# ===========================================

@pytest.fixture
def fake_supabase() -> FakeSupabase:
    """In-memory Supabase tables."""
    return FakeSupabase()


@pytest.fixture
def db(fake_supabase) -> DatabaseService:
    """Real DatabaseService over the in-memory client."""
    return DatabaseService(client=fake_supabase)


@pytest.fixture
def inference() -> FakeInference:
    """Scripted inference; queue responses per test."""
    return FakeInference()


@pytest.fixture
def email() -> FakeEmail:
    """Recording email sender."""
    return FakeEmail()


@pytest.fixture
def extractor(inference) -> SignalExtractor:
    return SignalExtractor(inference=inference)


@pytest.fixture
def ledger(db) -> AgentRunLedger:
    return AgentRunLedger(db=db)


@pytest.fixture
def actions(db, email) -> ActionQueue:
    return ActionQueue(db=db, email=email)


@pytest.fixture
def deals(db, extractor) -> DealService:
    return DealService(db=db, extractor=extractor)


@pytest.fixture
def meetings(db, extractor, inference, actions) -> MeetingController:
    return MeetingController(db=db, extractor=extractor, inference=inference, actions=actions)


@pytest.fixture
def replies(db, extractor, inference, actions, deals) -> ReplyHandler:
    return ReplyHandler(db=db, extractor=extractor, inference=inference, actions=actions, deals=deals)


# ===========================================
# Row Factories
# ===========================================

@pytest.fixture
def make_lead(fake_supabase) -> Callable[..., Dict[str, Any]]:
    """Seed a lead row; keyword arguments override the defaults."""
    def _make(**overrides: Any) -> Dict[str, Any]:
        data = {
            "name": "Dana Whitfield",
            "email": "dana@brightpath.io",
            "company": "BrightPath Logistics",
            "industry": "Logistics",
            "status": "contacted",
            "lead_score": 50,
            "sentiment_score": 0.5,
            "last_contacted_at": days_ago(3),
            "last_reply_at": None,
        }
        data.update(overrides)
        return fake_supabase.seed("leads", **data)
    return _make


@pytest.fixture
def make_deal(fake_supabase) -> Callable[..., Dict[str, Any]]:
    """Seed a deal row for a lead."""
    def _make(lead_id: str, **overrides: Any) -> Dict[str, Any]:
        data = {
            "lead_id": lead_id,
            "name": "BrightPath Logistics - Sales Opportunity",
            "stage": "prospect",
            "value": 5000,
            "probability": 0.3,
            "last_activity_at": days_ago(1),
        }
        data.update(overrides)
        return fake_supabase.seed("deals", **data)
    return _make


@pytest.fixture
def make_meeting(fake_supabase) -> Callable[..., Dict[str, Any]]:
    """Seed a meeting row for a lead."""
    def _make(lead_id: str, **overrides: Any) -> Dict[str, Any]:
        data = {
            "lead_id": lead_id,
            "title": "Pipeline review",
            "status": "scheduled",
            "manager_alert_triggered": False,
        }
        data.update(overrides)
        return fake_supabase.seed("meetings", **data)
    return _make


# ===========================================
# Client Fixtures
# ===========================================

@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client; patch the route singletons per test."""
    from agent_crm.main import app
    with TestClient(app) as test_client:
        yield test_client


# ===========================================
# Pytest Configuration
# ===========================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "scenario: end-to-end behaviour scenarios for the engine"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
