"""
Shared test fixtures and configuration.

Every test runs against a fresh in-memory SQLite schema. The AI provider is the
keyword mock (wrapped so calls can be counted) and Instagram sends are Mocks.
"""
import os

# Configure before any project module reads config.py
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""
os.environ["AI_PROVIDER"] = "mock"
os.environ["META_APP_SECRET"] = ""
os.environ["META_WEBHOOK_VERIFY_TOKEN"] = "test_verify_token"

from datetime import datetime
from typing import List
from unittest.mock import Mock

import pytest

from app import create_app
from database.connection import engine
from models import Base
from repository import profile_repository
from services.mock_ai_service import MockAIService
from services.message_analyzer import MessageAnalyzer
from services.reply_pipeline import InboundMessage, ReplyPipeline


class RecordingAIService(MockAIService):
    """Keyword mock that remembers every call; can be switched to raise."""

    provider_name = "recording"

    def __init__(self):
        super().__init__()
        self.intent_calls: List[dict] = []
        self.relevance_calls: List[str] = []
        self.raise_on_intent = False

    def analyze_message_intent(self, message_text, business_rules=None, conversation_context=None, channel="dm"):
        self.intent_calls.append({
            "message_text": message_text,
            "business_rules": business_rules,
            "conversation_context": conversation_context,
            "channel": channel,
        })
        if self.raise_on_intent:
            raise RuntimeError("provider unavailable")
        return super().analyze_message_intent(message_text, business_rules, conversation_context, channel)

    def should_reply_to_comment(self, comment_text):
        self.relevance_calls.append(comment_text)
        return super().should_reply_to_comment(comment_text)


@pytest.fixture(autouse=True)
def clean_db():
    """Recreate all tables around each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_profile():
    """Factory for connected business profiles."""
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        n = counter["n"]
        defaults = {
            "business_name": f"Shop {n}",
            "instagram_access_token": f"token-{n}",
            "instagram_user_id": f"ig-{n}",
            "facebook_page_id": f"page-{n}",
        }
        defaults.update(fields)
        return profile_repository.create_profile(f"owner{n}@example.com", **defaults)

    return _make


@pytest.fixture
def ai_service():
    return RecordingAIService()


@pytest.fixture
def dm_sender():
    return Mock(return_value="dm-reply-1")


@pytest.fixture
def comment_sender():
    return Mock(return_value="comment-reply-1")


@pytest.fixture
def pipeline(ai_service, dm_sender, comment_sender):
    return ReplyPipeline(MessageAnalyzer(ai_service), dm_sender=dm_sender, comment_sender=comment_sender)


@pytest.fixture
def client(pipeline):
    app = create_app(pipeline=pipeline)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def make_inbound():
    """Factory for normalized inbound messages."""
    def _make(message_id, text, channel="dm", sender_id="customer-1", timestamp=None, **fields):
        if channel == "dm":
            fields.setdefault("conversation_id", f"conv-{sender_id}")
        else:
            fields.setdefault("post_id", "media-1")
        return InboundMessage(
            message_id=message_id,
            channel=channel,
            sender_id=sender_id,
            text=text,
            timestamp=timestamp or datetime(2025, 5, 1, 12, 0, 0),
            **fields,
        )
    return _make
