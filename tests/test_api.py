"""JSON API routes through the Flask test client."""
from datetime import datetime, timedelta
from unittest.mock import patch

from repository.message_repository import MessageRepository
from repository.reply_queue_repository import ReplyQueueRepository


class TestUserId:

    def test_missing_user_id(self, client):
        response = client.get("/api/automation-rules")
        assert response.status_code == 400
        assert response.get_json() == {"error": "User ID required"}

    def test_health(self, client):
        response = client.get("/")
        assert response.get_json() == {"status": "ok"}
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestAutomationRuleRoutes:

    def test_create_list_update_delete(self, client, make_profile):
        profile = make_profile()

        created = client.post("/api/automation-rules", json={
            "userId": profile.id, "trigger_text": "price", "reply_text": "€10", "match_type": "contains",
        })
        assert created.status_code == 201
        rule = created.get_json()["rule"]
        assert rule["trigger_type"] == "both"

        listed = client.get(f"/api/automation-rules?userId={profile.id}").get_json()
        assert [r["id"] for r in listed["rules"]] == [rule["id"]]
        assert listed["stats"]["active_rules"] == 1

        updated = client.put(f"/api/automation-rules/{rule['id']}", json={"userId": profile.id, "is_active": False})
        assert updated.status_code == 200
        assert updated.get_json()["rule"]["is_active"] is False

        deleted = client.delete(f"/api/automation-rules/{rule['id']}?userId={profile.id}")
        assert deleted.status_code == 200
        assert client.delete(f"/api/automation-rules/{rule['id']}?userId={profile.id}").status_code == 404

    def test_validation_errors(self, client, make_profile):
        profile = make_profile()

        response = client.post("/api/automation-rules", json={"userId": profile.id, "trigger_text": "hi"})

        assert response.status_code == 400
        assert "Reply text is required" in response.get_json()["errors"]

    def test_update_is_validated_against_merged_rule(self, client, make_profile):
        profile = make_profile()
        rule = client.post("/api/automation-rules", json={
            "userId": profile.id, "trigger_text": "hi", "reply_text": "Hello!",
        }).get_json()["rule"]

        response = client.put(f"/api/automation-rules/{rule['id']}", json={"userId": profile.id, "match_type": "regex"})

        assert response.status_code == 400

    def test_rules_are_scoped_to_profile(self, client, make_profile):
        owner, stranger = make_profile(), make_profile()
        rule = client.post("/api/automation-rules", json={
            "userId": owner.id, "trigger_text": "hi", "reply_text": "Hello!",
        }).get_json()["rule"]

        response = client.put(f"/api/automation-rules/{rule['id']}", json={"userId": stranger.id, "reply_text": "x"})

        assert response.status_code == 404


class TestBusinessRuleRoutes:

    def test_crud(self, client, make_profile):
        profile = make_profile()

        created = client.post("/api/business-rules", json={
            "userId": profile.id, "rule_type": "price", "rule_key": "Haircut", "rule_value": "35 €",
        })
        assert created.status_code == 201
        rule_id = created.get_json()["rule"]["id"]

        bad = client.post("/api/business-rules", json={"userId": profile.id, "rule_type": "menu", "rule_key": "x"})
        assert bad.status_code == 400

        updated = client.put(f"/api/business-rules/{rule_id}", json={"userId": profile.id, "rule_value": "39 €"})
        assert updated.get_json()["rule"]["rule_value"] == "39 €"

        listed = client.get(f"/api/business-rules?userId={profile.id}&rule_type=faq").get_json()
        assert listed["rules"] == []

        assert client.delete(f"/api/business-rules/{rule_id}?userId={profile.id}").status_code == 200


class TestSettingsAndUsage:

    def test_toggle_auto_reply(self, client, make_profile):
        profile = make_profile()

        response = client.put("/api/settings/auto-reply", json={"userId": profile.id, "auto_reply_dms_enabled": True})

        assert response.get_json() == {
            "success": True, "auto_reply_dms_enabled": True, "auto_reply_comments_enabled": False,
        }
        settings = client.get(f"/api/settings/auto-reply?userId={profile.id}").get_json()
        assert settings["auto_reply_dms_enabled"] is True

    def test_usage(self, client, make_profile):
        profile = make_profile(subscription_tier="basic")

        body = client.get(f"/api/subscriptions/usage?userId={profile.id}").get_json()

        assert body["limit"] == 500
        assert body["current_count"] == 0
        assert body["is_over_limit"] is False


class TestSyncRoutes:

    def test_not_connected(self, client, make_profile):
        profile = make_profile(instagram_access_token=None)
        response = client.post("/api/messages/sync", json={"userId": profile.id})
        assert response.status_code == 400

    def test_comment_sync_counts(self, client, make_profile):
        profile = make_profile()
        posts = [{"media_id": "media-1", "post_url": None, "comments": [{"id": "c-1", "username": "fan", "text": "Price?"}]}]

        with patch("services.instagram_service.sync_instagram_comments", return_value=posts):
            response = client.post("/api/comments/sync", json={"userId": profile.id})

        body = response.get_json()
        assert response.status_code == 200
        assert (body["success"], body["synced"], body["analyzed"]) == (True, 1, 1)

    def test_graph_failure(self, client, make_profile):
        from services.instagram_service import InstagramAPIError
        profile = make_profile()

        with patch("services.instagram_service.get_instagram_conversations", side_effect=InstagramAPIError("expired")):
            response = client.post("/api/messages/sync", json={"userId": profile.id})

        assert response.status_code == 500
        assert response.get_json()["details"] == "expired"


class TestAnalyzeRoute:

    def _store(self, profile, **fields):
        MessageRepository.create_message(
            profile.id, "c-1", message_type="comment", sender_id="fan", message_text="Where is the shop?",
            timestamp=datetime(2025, 5, 1), **fields,
        )

    def test_computes_then_caches(self, client, pipeline, make_profile):
        profile = make_profile()
        self._store(profile)

        first = client.post("/api/messages/analyze", json={"userId": profile.id, "messageId": "c-1"}).get_json()
        second = client.post("/api/messages/analyze", json={"userId": profile.id, "messageId": "c-1"}).get_json()

        assert (first["cached"], second["cached"]) == (False, True)
        assert first["analysis"]["intent"] == "location"
        assert "suggestedReplyFi" in first["analysis"]
        assert len(pipeline.analyzer.ai_service.intent_calls) == 1

    def test_not_found(self, client, make_profile):
        profile = make_profile()
        response = client.post("/api/messages/analyze", json={"userId": profile.id, "messageId": "nope"})
        assert response.status_code == 404

    def test_quota_exhausted(self, client, make_profile):
        from services.usage_service import utc_now
        profile = make_profile(monthly_message_count=50, last_message_reset=utc_now().date())
        self._store(profile)

        response = client.post("/api/messages/analyze", json={"userId": profile.id, "messageId": "c-1"})

        assert response.status_code == 403
        assert response.get_json()["upgrade_required"] is True


class TestQueueRoutes:

    def _queue_one(self, pipeline, profile, make_inbound):
        pipeline.process_batch(profile, [make_inbound("m-1", "Where is your shop?")], "dm")
        return ReplyQueueRepository.list_by_status(profile.id)[0]

    def test_approve_and_conflict(self, client, pipeline, make_profile, make_inbound):
        profile = make_profile(auto_reply_dms_enabled=True)
        entry = self._queue_one(pipeline, profile, make_inbound)

        queue = client.get(f"/api/auto-reply/queue?userId={profile.id}").get_json()
        assert queue["count"] == 1

        with patch("services.instagram_service.send_dm_reply", return_value="mid-x"):
            approved = client.post("/api/auto-reply/approve", json={
                "userId": profile.id, "queueItemId": entry.id, "editedReply": "We are at Main St 1",
            })
            again = client.post("/api/auto-reply/approve", json={"userId": profile.id, "queueItemId": entry.id})

        assert approved.status_code == 200
        assert approved.get_json()["item"]["final_reply"] == "We are at Main St 1"
        assert again.status_code == 409

        logs = client.get(f"/api/auto-reply/logs?userId={profile.id}").get_json()["logs"]
        assert [log["reply_type"] for log in logs] == ["ai_approved"]

    def test_reject(self, client, pipeline, make_profile, make_inbound):
        profile = make_profile(auto_reply_dms_enabled=True)
        entry = self._queue_one(pipeline, profile, make_inbound)

        response = client.post("/api/auto-reply/reject", json={"userId": profile.id, "queueItemId": entry.id})

        assert response.get_json()["item"]["status"] == "rejected"
        missing = client.post("/api/auto-reply/reject", json={"userId": profile.id, "queueItemId": 999})
        assert missing.status_code == 404


class TestInboxRoutes:

    def test_inbox_quick_reply_and_ignore(self, client, pipeline, make_profile, make_inbound):
        profile = make_profile()
        pipeline.process_batch(profile, [make_inbound("c-1", "Price?", channel="comment")], "comment")

        inbox = client.get(f"/api/unified-inbox?userId={profile.id}&filter=leads").get_json()
        assert inbox["total"] == 1
        assert inbox["items"][0]["lead_info"] == {"isLead": True, "score": 10, "reason": "High-value: Price inquiry"}

        with patch("services.instagram_service.send_comment_reply", return_value="r-1"):
            reply = client.post("/api/quick-reply", json={
                "userId": profile.id, "itemType": "comment", "sourceId": "c-1", "replyText": "20 €",
            })
        assert reply.get_json()["replyId"] == "r-1"

        answered = client.get(f"/api/unified-inbox?userId={profile.id}&filter=answered").get_json()
        assert answered["total"] == 1

        ignored = client.post("/api/messages/ignore", json={"userId": profile.id, "messageIds": ["c-1"]})
        assert ignored.get_json() == {"success": True, "archived": 1}

    def test_invalid_filter(self, client, make_profile):
        profile = make_profile()
        response = client.get(f"/api/unified-inbox?userId={profile.id}&filter=spam")
        assert response.status_code == 400


class TestRuleTryOut:

    def test_reports_matches_per_message(self, client, make_profile):
        profile = make_profile()
        rule = client.post("/api/automation-rules", json={
            "userId": profile.id, "trigger_text": "price", "reply_text": "€10", "match_type": "contains",
        }).get_json()["rule"]

        response = client.post(f"/api/automation-rules/{rule['id']}/test", json={
            "userId": profile.id, "messages": ["What is the PRICE?", "hello"],
        })

        assert response.status_code == 200
        assert [r["matches"] for r in response.get_json()["results"]] == [True, False]

    def test_bad_input(self, client, make_profile):
        profile = make_profile()
        rule = client.post("/api/automation-rules", json={
            "userId": profile.id, "trigger_text": "hi", "reply_text": "Hello!",
        }).get_json()["rule"]

        assert client.post(f"/api/automation-rules/{rule['id']}/test",
                           json={"userId": profile.id, "messages": []}).status_code == 400
        assert client.post("/api/automation-rules/999/test",
                           json={"userId": profile.id, "messages": ["hi"]}).status_code == 404


class TestMessageLifecycleRoutes:

    def _store(self, profile, message_id="m-1", **fields):
        return MessageRepository.create_message(
            profile.id, message_id, message_type="dm", sender_id="customer-1",
            message_text="Onko tätä varastossa?", timestamp=datetime(2025, 5, 1), **fields,
        )

    def test_generate_reply_in_message_language(self, client, make_profile):
        profile = make_profile()
        self._store(profile, detected_language="fi")

        body = client.post("/api/messages/generate-reply", json={"userId": profile.id, "messageId": "m-1"}).get_json()
        english = client.post("/api/messages/generate-reply", json={
            "userId": profile.id, "messageId": "m-1", "language": "en",
        }).get_json()

        assert body["reply"].startswith("Kiitos")
        assert english["reply"].startswith("Thank you")
        assert client.post("/api/messages/generate-reply",
                           json={"userId": profile.id, "messageId": "nope"}).status_code == 404

    def test_add_to_pending(self, client, make_profile):
        profile = make_profile()
        self._store(profile)
        payload = {"userId": profile.id, "itemType": "dm", "sourceId": "m-1", "aiSuggestion": "Kyllä on!"}

        created = client.post("/api/messages/add-to-pending", json=payload)
        again = client.post("/api/messages/add-to-pending", json=payload)
        missing = client.post("/api/messages/add-to-pending", json={**payload, "sourceId": "nope"})
        incomplete = client.post("/api/messages/add-to-pending", json={"userId": profile.id, "itemType": "dm"})

        assert created.status_code == 200
        assert created.get_json()["item"]["suggested_reply"] == "Kyllä on!"
        assert (again.status_code, missing.status_code, incomplete.status_code) == (409, 404, 400)
        queue = client.get(f"/api/auto-reply/queue?userId={profile.id}").get_json()
        assert queue["count"] == 1

    def test_mark_replied(self, client, make_profile):
        profile = make_profile()
        message = self._store(profile)

        response = client.patch(f"/api/messages/{message.id}/mark-replied", json={
            "userId": profile.id, "replied": True, "reply_text": "Answered in store",
        })

        assert response.status_code == 200
        assert response.get_json()["message"]["replied_by"] == "manual"
        answered = client.get(f"/api/unified-inbox?userId={profile.id}&filter=answered").get_json()
        assert answered["total"] == 1

        assert client.patch(f"/api/messages/{message.id}/mark-replied",
                            json={"userId": profile.id}).status_code == 400
        assert client.patch("/api/messages/999/mark-replied",
                            json={"userId": profile.id, "replied": False}).status_code == 404

    def test_archive_old(self, client, make_profile):
        from services.usage_service import utc_now
        profile = make_profile()
        self._store(profile, replied_at=utc_now() - timedelta(days=45))

        response = client.post("/api/messages/archive-old", json={"userId": profile.id})

        assert response.get_json() == {
            "success": True, "archivedMessages": 1, "archivedComments": 0, "message": "Archived 1 total items",
        }
        assert client.post("/api/messages/archive-old",
                           json={"userId": profile.id, "daysOld": 400}).status_code == 400
        assert client.post("/api/messages/archive-old",
                           json={"userId": profile.id, "daysOld": "ten"}).status_code == 400
