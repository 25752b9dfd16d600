import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from flask import request

from config import META_APP_SECRET, META_WEBHOOK_VERIFY_TOKEN
from models.instagram_message import Channel
from models.timestamp_mixin import utc_now
from repository import profile_repository
from services.instagram_service import verify_webhook_signature
from services.reply_pipeline import InboundMessage, ReplyPipeline
from utils.logger import logger


def _handle_get_request() -> Tuple[Any, int]:
    mode = request.args.get("hub.mode")
    token = request.args.get("hub.verify_token")
    challenge = request.args.get("hub.challenge")

    if mode == "subscribe" and token == META_WEBHOOK_VERIFY_TOKEN:
        logger.info("✅ Webhook verified")
        return challenge or "", 200

    logger.warning("❌ Webhook verification failed")
    return {"error": "Verification failed"}, 403


def _event_time(value: Any) -> datetime:
    """Webhook times are epoch milliseconds for DMs and seconds for comments."""
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 10_000_000_000 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
    return utc_now()


def normalize_dm_event(event: Dict[str, Any]) -> Optional[InboundMessage]:
    """A messaging event sent to the business, or None for echoes and non-text events."""
    message = event.get("message")
    if not message or message.get("is_echo"):
        return None
    text = message.get("text") or ""
    if not text:
        logger.info("⏭️ Skipping message without text")
        return None

    sender_id = event.get("sender", {}).get("id")
    return InboundMessage(
        message_id=message["mid"],
        channel=Channel.DM.value,
        sender_id=sender_id,
        text=text,
        timestamp=_event_time(event.get("timestamp")),
        # Webhooks carry no thread id; the sender identifies the conversation
        conversation_id=sender_id,
    )


def normalize_comment_change(value: Dict[str, Any]) -> Optional[InboundMessage]:
    text = value.get("text") or ""
    if not text:
        logger.info("⏭️ Skipping comment without text")
        return None

    sender = value.get("from") or {}
    return InboundMessage(
        message_id=value["id"],
        channel=Channel.COMMENT.value,
        sender_id=sender.get("id") or "unknown",
        sender_username=sender.get("username"),
        text=text,
        timestamp=_event_time(value.get("timestamp")),
        post_id=(value.get("media") or {}).get("id"),
    )


def _profile_for_entry(entry_id: Optional[str]):
    """Entries are keyed by the page id (Messenger platform) or the Instagram account id."""
    if not entry_id:
        return None
    return (profile_repository.get_profile_by_page_id(entry_id)
            or profile_repository.get_profile_by_instagram_user_id(entry_id))


def _route_and_process(pipeline: ReplyPipeline, profile, inbound: InboundMessage) -> None:
    if profile is None or not profile.instagram_connected:
        logger.warning(f"⚠️ No connected profile for {inbound.channel} {inbound.message_id}")
        return
    logger.info(f"📩 New {inbound.channel} from {inbound.sender_id}: '{inbound.text}'")
    pipeline.process_batch(profile, [inbound], inbound.channel)


def process_webhook_payload(pipeline: ReplyPipeline, data: Dict[str, Any]) -> List[InboundMessage]:
    """Route every DM and comment in a webhook payload to its owning profile."""
    handled: List[InboundMessage] = []
    for entry in data.get("entry", []):
        entry_id = entry.get("id")

        for event in entry.get("messaging", []):
            try:
                inbound = normalize_dm_event(event)
                if inbound is None:
                    continue
                _route_and_process(pipeline, _profile_for_entry(entry_id), inbound)
                handled.append(inbound)
            except Exception as e:
                logger.error(f"❌ Error handling DM event: {e}")

        for change in entry.get("changes", []):
            if change.get("field") != "comments":
                continue
            try:
                value = change.get("value") or {}
                inbound = normalize_comment_change(value)
                if inbound is None:
                    continue
                _route_and_process(pipeline, _profile_for_entry(entry_id), inbound)
                handled.append(inbound)
            except Exception as e:
                logger.error(f"❌ Error handling comment event: {e}")
    return handled


def _handle_post_request(pipeline: ReplyPipeline) -> Tuple[Any, int]:
    raw_body = request.get_data()

    if META_APP_SECRET:
        signature = request.headers.get("X-Hub-Signature-256")
        if not verify_webhook_signature(raw_body, signature, META_APP_SECRET):
            logger.warning("❌ Invalid webhook signature")
            return {"error": "Invalid signature"}, 403

    try:
        data = json.loads(raw_body or b"{}")
        logger.info(f"📨 Webhook received: object={data.get('object')}")
        process_webhook_payload(pipeline, data)
    except Exception as e:
        # Still acknowledge so Meta does not retry the delivery
        logger.error(f"❌ Error processing webhook: {e}")

    return {"success": True}, 200


def handle_webhook(pipeline: ReplyPipeline) -> Tuple[Any, int]:
    """Main webhook handler function."""
    if request.method == "GET":
        return _handle_get_request()

    if request.method == "POST":
        return _handle_post_request(pipeline)

    return "Method not allowed", 405
