from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from config import COMMENT_SYNC_POST_LIMIT
from models.instagram_message import Channel
from models.profile import Profile
from models.timestamp_mixin import to_naive_utc, utc_now
from repository import profile_repository
from services import instagram_service
from services.reply_pipeline import InboundMessage, ReplyPipeline, SyncResult
from utils.logger import logger


class InstagramNotConnectedError(Exception):
    pass


def parse_graph_timestamp(value: Optional[str]) -> datetime:
    """Graph API times look like 2024-05-01T10:15:00+0000."""
    if not value:
        return utc_now()
    try:
        return to_naive_utc(date_parser.parse(value))
    except (ValueError, OverflowError):
        logger.warning(f"Unparseable Graph timestamp '{value}', using now")
        return utc_now()


def _connected_profile(user_id: int, require_page: bool) -> Profile:
    profile = profile_repository.get_profile_by_id(user_id)
    if profile is None or not profile.instagram_connected or (require_page and not profile.facebook_page_id):
        raise InstagramNotConnectedError("Instagram not connected")
    return profile


def normalize_conversation_messages(profile: Profile, conversation_id: str,
                                    messages: List[Dict[str, Any]]) -> List[InboundMessage]:
    """Graph thread messages sent by customers; the business's own messages are dropped."""
    own_ids = {profile.instagram_user_id, profile.facebook_page_id}
    inbound = []
    for msg in messages:
        sender = msg.get("from") or {}
        if sender.get("id") in own_ids or not msg.get("message"):
            continue
        inbound.append(InboundMessage(
            message_id=msg["id"],
            channel=Channel.DM.value,
            sender_id=sender.get("id") or "unknown",
            sender_username=sender.get("username"),
            sender_name=sender.get("name"),
            text=msg["message"],
            timestamp=parse_graph_timestamp(msg.get("created_time")),
            conversation_id=conversation_id,
        ))
    return inbound


def normalize_post_comments(profile: Profile, media_id: str, comments: List[Dict[str, Any]]) -> List[InboundMessage]:
    inbound = []
    for comment in comments:
        sender = comment.get("from") or {}
        if sender.get("id") and sender.get("id") == profile.instagram_user_id:
            continue
        if not comment.get("text"):
            continue
        inbound.append(InboundMessage(
            message_id=comment["id"],
            channel=Channel.COMMENT.value,
            sender_id=sender.get("id") or "unknown",
            sender_username=sender.get("username") or comment.get("username"),
            text=comment["text"],
            timestamp=parse_graph_timestamp(comment.get("timestamp")),
            post_id=media_id,
        ))
    return inbound


def sync_direct_messages(user_id: int, pipeline: ReplyPipeline) -> SyncResult:
    """
    Pull DM threads from the Graph API and run new messages through the pipeline.

    Failing to list conversations raises InstagramAPIError; a thread that cannot
    be read is logged and skipped.
    """
    profile = _connected_profile(user_id, require_page=True)
    logger.info(f"🔄 Starting Instagram message sync for profile {user_id}")

    conversations = instagram_service.get_instagram_conversations(
        profile.facebook_page_id, profile.instagram_access_token
    )

    inbound: List[InboundMessage] = []
    for conversation in conversations:
        try:
            messages = instagram_service.get_conversation_messages(conversation["id"], profile.instagram_access_token)
        except instagram_service.InstagramAPIError as e:
            logger.error(f"Error processing conversation {conversation.get('id')}: {e}")
            continue
        inbound.extend(normalize_conversation_messages(profile, conversation["id"], messages))

    result = pipeline.process_batch(profile, inbound, Channel.DM.value)
    profile_repository.touch_last_sync(user_id, Channel.DM.value)
    return result


def sync_comments(user_id: int, pipeline: ReplyPipeline, post_limit: int = COMMENT_SYNC_POST_LIMIT) -> SyncResult:
    profile = _connected_profile(user_id, require_page=False)
    if not profile.instagram_user_id:
        raise InstagramNotConnectedError("Instagram not connected")
    logger.info(f"🔄 Starting Instagram comment sync for profile {user_id}")

    posts = instagram_service.sync_instagram_comments(
        profile.instagram_user_id, profile.instagram_access_token, post_limit
    )

    inbound: List[InboundMessage] = []
    for post in posts:
        inbound.extend(normalize_post_comments(profile, post["media_id"], post["comments"]))

    result = pipeline.process_batch(profile, inbound, Channel.COMMENT.value)
    profile_repository.touch_last_sync(user_id, Channel.COMMENT.value)
    return result
