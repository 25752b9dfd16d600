import hashlib
import hmac
from typing import Any, Dict, List, Optional

import requests

from config import COMMENT_SYNC_POST_LIMIT, INSTAGRAM_REQUEST_TIMEOUT, META_API_BASE
from utils.logger import logger


class InstagramAPIError(Exception):
    """A Graph API call failed (HTTP error or unreachable)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _graph_error_message(response: requests.Response) -> str:
    try:
        error = response.json().get("error", {})
        return error.get("message") or response.text
    except ValueError:
        return response.text


def _request(method: str, path: str, params: Dict[str, Any], json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    url = f"{META_API_BASE}/{path}"
    try:
        response = requests.request(method, url, params=params, json=json, timeout=INSTAGRAM_REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.error(f"❌ Instagram API unreachable ({method} {path}): {e}")
        raise InstagramAPIError(str(e)) from e

    if response.status_code >= 400:
        message = _graph_error_message(response)
        logger.error(f"❌ Instagram API error {response.status_code} ({method} {path}): {message}")
        raise InstagramAPIError(message, status_code=response.status_code)

    return response.json() if response.content else {}


def get_instagram_conversations(page_id: str, access_token: str) -> List[Dict[str, Any]]:
    """Instagram DM threads of a Facebook page (the page id, not the IG user id)."""
    logger.info(f"🔍 Fetching Instagram conversations for page: {page_id}")
    data = _request("GET", f"{page_id}/conversations", params={
        "platform": "instagram",
        "fields": "id,updated_time,participants",
        "access_token": access_token,
    })
    conversations = data.get("data", [])
    logger.info(f"📬 Conversations found: {len(conversations)}")
    return conversations


def get_conversation_messages(conversation_id: str, access_token: str) -> List[Dict[str, Any]]:
    logger.info(f"💬 Fetching messages for conversation: {conversation_id}")
    data = _request("GET", f"{conversation_id}/messages", params={
        "fields": "id,from,message,created_time",
        "access_token": access_token,
    })
    return data.get("data", [])


def send_conversation_message(page_id: str, recipient_id: str, text: str, access_token: str) -> str:
    """Send a DM reply. Returns the Graph message id."""
    logger.info(f"📤 Sending DM to {recipient_id}")
    data = _request(
        "POST",
        f"{page_id}/messages",
        params={"access_token": access_token},
        json={"recipient": {"id": recipient_id}, "message": {"text": text}},
    )
    message_id = data.get("message_id") or data.get("id")
    logger.info(f"✅ DM sent successfully: {message_id}")
    return message_id


def reply_to_comment(comment_id: str, text: str, access_token: str) -> str:
    """Post a public reply under a comment. Returns the reply comment id."""
    logger.info(f"📝 Replying to comment: {comment_id}")
    data = _request("POST", f"{comment_id}/replies", params={
        "message": text,
        "access_token": access_token,
    })
    reply_id = data.get("id")
    logger.info(f"✅ Reply posted successfully: {reply_id}")
    return reply_id


def get_user_recent_media(ig_user_id: str, access_token: str, limit: int = 25) -> List[Dict[str, Any]]:
    logger.info(f"📸 Fetching recent media for Instagram user: {ig_user_id}")
    data = _request("GET", f"{ig_user_id}/media", params={
        "fields": "id,caption,media_type,media_url,timestamp,permalink",
        "access_token": access_token,
        "limit": limit,
    })
    media = data.get("data", [])
    logger.info(f"📊 Media items found: {len(media)}")
    return media


def get_media_comments(media_id: str, access_token: str) -> List[Dict[str, Any]]:
    data = _request("GET", f"{media_id}/comments", params={
        "fields": "id,from,username,text,timestamp,like_count",
        "access_token": access_token,
    })
    return data.get("data", [])


def sync_instagram_comments(ig_user_id: str, access_token: str,
                            post_limit: int = COMMENT_SYNC_POST_LIMIT) -> List[Dict[str, Any]]:
    """
    Comments on the most recent posts, grouped per post:
    [{"media_id": ..., "post_url": ..., "comments": [...]}].

    A failure on one post is logged and skipped; failing to list the posts raises.
    """
    logger.info(f"🔄 Starting comment sync for user: {ig_user_id}")
    media_items = get_user_recent_media(ig_user_id, access_token, post_limit)

    results = []
    for media in media_items:
        try:
            comments = get_media_comments(media["id"], access_token)
        except InstagramAPIError as e:
            logger.error(f"Error fetching comments for media {media.get('id')}: {e}")
            continue
        if comments:
            results.append({
                "media_id": media["id"],
                "post_url": media.get("permalink"),
                "comments": comments,
            })

    logger.info(f"✅ Comment sync complete. Found comments on {len(results)} posts")
    return results


def verify_webhook_signature(payload: bytes, signature: Optional[str], app_secret: str) -> bool:
    """Check Meta's X-Hub-Signature-256 header (``sha256=<hex hmac>``)."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len("sha256="):])


def send_dm_reply(profile, recipient_id: str, text: str) -> str:
    """DM reply through the business's Facebook page."""
    return send_conversation_message(profile.facebook_page_id, recipient_id, text, profile.instagram_access_token)


def send_comment_reply(profile, comment_id: str, text: str) -> str:
    return reply_to_comment(comment_id, text, profile.instagram_access_token)
