"""Webhook verification, signature check and routing."""
import hashlib
import hmac
import json
from unittest.mock import patch

from repository.message_repository import MessageRepository
from services.webhook_service import normalize_comment_change, normalize_dm_event


def dm_payload(entry_id, mid="mid.1", text="Where are you located?", sender="customer-9", echo=False):
    message = {"mid": mid, "text": text}
    if echo:
        message["is_echo"] = True
    return {
        "object": "instagram",
        "entry": [{
            "id": entry_id,
            "time": 1714557600,
            "messaging": [{
                "sender": {"id": sender},
                "recipient": {"id": entry_id},
                "timestamp": 1714557600123,
                "message": message,
            }],
        }],
    }


def comment_payload(entry_id, comment_id="17890001", text="Price?"):
    return {
        "object": "instagram",
        "entry": [{
            "id": entry_id,
            "time": 1714557600,
            "changes": [{
                "field": "comments",
                "value": {
                    "id": comment_id,
                    "text": text,
                    "from": {"id": "fan-1", "username": "fan"},
                    "media": {"id": "media-7"},
                },
            }],
        }],
    }


class TestVerification:

    def test_valid_token_returns_challenge(self, client):
        response = client.get("/webhook?hub.mode=subscribe&hub.verify_token=test_verify_token&hub.challenge=abc123")

        assert response.status_code == 200
        assert response.get_data(as_text=True) == "abc123"

    def test_wrong_token(self, client):
        response = client.get("/webhook?hub.mode=subscribe&hub.verify_token=nope&hub.challenge=abc123")
        assert response.status_code == 403


class TestSignature:

    def test_rejects_bad_signature_when_secret_set(self, client):
        body = json.dumps(dm_payload("page-1")).encode()

        with patch("services.webhook_service.META_APP_SECRET", "app-secret"):
            response = client.post("/webhook", data=body, content_type="application/json",
                                   headers={"X-Hub-Signature-256": "sha256=deadbeef"})

        assert response.status_code == 403

    def test_accepts_valid_signature(self, client, make_profile):
        profile = make_profile()
        body = json.dumps(dm_payload(profile.facebook_page_id)).encode()
        signature = "sha256=" + hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()

        with patch("services.webhook_service.META_APP_SECRET", "app-secret"):
            response = client.post("/webhook", data=body, content_type="application/json",
                                   headers={"X-Hub-Signature-256": signature})

        assert response.status_code == 200
        assert MessageRepository.exists(profile.id, "mid.1")


class TestRouting:

    def test_dm_routed_by_page_id(self, client, make_profile):
        other = make_profile()
        profile = make_profile()

        response = client.post("/webhook", json=dm_payload(profile.facebook_page_id))

        assert response.status_code == 200
        assert response.get_json() == {"success": True}
        message = MessageRepository.get_by_message_id(profile.id, "mid.1")
        assert message.sender_id == "customer-9"
        assert message.conversation_id == "customer-9"
        assert message.intent == "location"
        assert not MessageRepository.exists(other.id, "mid.1")

    def test_comment_routed_by_instagram_account(self, client, make_profile):
        profile = make_profile()

        client.post("/webhook", json=comment_payload(profile.instagram_user_id))

        comment = MessageRepository.get_by_message_id(profile.id, "17890001")
        assert comment.message_type == "comment"
        assert comment.post_id == "media-7"
        assert comment.sender_username == "fan"

    def test_echo_and_unknown_entries_are_acknowledged(self, client, make_profile):
        profile = make_profile()

        echo = client.post("/webhook", json=dm_payload(profile.facebook_page_id, echo=True))
        unknown = client.post("/webhook", json=dm_payload("page-nobody", mid="mid.2"))

        assert (echo.status_code, unknown.status_code) == (200, 200)
        assert MessageRepository.list_messages(profile.id) == []

    def test_disconnected_profile_is_ignored(self, client, make_profile):
        profile = make_profile(instagram_access_token=None)
        client.post("/webhook", json=dm_payload(profile.facebook_page_id))
        assert not MessageRepository.exists(profile.id, "mid.1")

    def test_malformed_body_still_acknowledged(self, client):
        response = client.post("/webhook", data=b"{not json", content_type="application/json")
        assert response.status_code == 200

    def test_processing_error_still_acknowledged(self, client, make_profile):
        profile = make_profile()

        with patch("services.reply_pipeline.ReplyPipeline.process_batch", side_effect=RuntimeError("db down")):
            response = client.post("/webhook", json=dm_payload(profile.facebook_page_id))

        assert response.status_code == 200

    def test_redelivery_is_idempotent(self, client, pipeline, make_profile):
        profile = make_profile(auto_reply_dms_enabled=True)
        payload = dm_payload(profile.facebook_page_id)

        client.post("/webhook", json=payload)
        client.post("/webhook", json=payload)

        assert len(MessageRepository.list_messages(profile.id)) == 1
        assert len(pipeline.analyzer.ai_service.intent_calls) == 1


class TestNormalizers:

    def test_dm_event_time_in_milliseconds(self):
        inbound = normalize_dm_event({
            "sender": {"id": "u1"},
            "timestamp": 1714557600123,
            "message": {"mid": "m", "text": "hi"},
        })
        assert inbound.timestamp.year == 2024
        assert inbound.channel == "dm"

    def test_events_without_text_are_skipped(self):
        assert normalize_dm_event({"sender": {"id": "u1"}, "message": {"mid": "m", "attachments": []}}) is None
        assert normalize_comment_change({"id": "c", "text": ""}) is None
