"""
JSON API handlers.

Each handler reads ``flask.request``, calls the service layer and returns a
``(body, status)`` tuple. Unexpected errors are logged and answered with 500.
"""
from functools import wraps
from typing import Any, Dict, Optional, Tuple

from flask import request

from models.instagram_message import Channel
from repository import business_rule_repository, profile_repository, reply_log_repository
from repository.automation_rule_repository import AutomationRuleRepository
from repository.message_repository import MessageRepository
from services import inbox_service, reply_queue_service, sync_service, usage_service
from services.automation_matcher import get_automation_rule_stats, test_automation_rule, validate_automation_rule
from services.inbox_service import INBOX_FILTERS
from services.instagram_service import InstagramAPIError
from services.reply_pipeline import ReplyPipeline
from utils.logger import logger
from utils.serializers import model_to_dict, models_to_list, to_json_dict
from utils.validators import parse_optional_bool, parse_user_id, validate_business_rule

Response = Tuple[Dict[str, Any], int]


def _payload() -> Dict[str, Any]:
    return request.get_json(silent=True) or {}


def _user_id() -> Optional[int]:
    """Caller identity from the JSON body or the query string (auth is handled upstream)."""
    body = _payload()
    return parse_user_id(
        body.get("userId") or body.get("user_id")
        or request.args.get("userId") or request.args.get("user_id")
    )


def api_handler(name: str):
    """Require a user id and turn unexpected exceptions into a 500 response."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            user_id = _user_id()
            if user_id is None:
                return {"error": "User ID required"}, 400
            try:
                return func(user_id, *args, **kwargs)
            except Exception as e:
                logger.error(f"❌ Error in {name}: {e}")
                return {"error": "Internal server error"}, 500
        return wrapper
    return decorator


# --- Sync ---------------------------------------------------------------------

def _sync(user_id: int, pipeline: ReplyPipeline, channel: str) -> Response:
    try:
        if channel == Channel.COMMENT.value:
            result = sync_service.sync_comments(user_id, pipeline)
        else:
            result = sync_service.sync_direct_messages(user_id, pipeline)
    except sync_service.InstagramNotConnectedError:
        return {"error": "Instagram not connected"}, 400
    except InstagramAPIError as e:
        return {"error": f"Failed to sync {channel}s", "details": str(e)}, 500

    body = {"success": True, **result.model_dump()}
    if result.upgrade_required:
        body["message"] = "Monthly message limit reached. Please upgrade your plan."
    return body, 200


@api_handler("POST /api/messages/sync")
def sync_messages(user_id: int, pipeline: ReplyPipeline) -> Response:
    return _sync(user_id, pipeline, Channel.DM.value)


@api_handler("POST /api/comments/sync")
def sync_comments(user_id: int, pipeline: ReplyPipeline) -> Response:
    return _sync(user_id, pipeline, Channel.COMMENT.value)


# --- On-demand analysis -------------------------------------------------------

@api_handler("POST /api/messages/analyze")
def analyze_message(user_id: int, pipeline: ReplyPipeline) -> Response:
    message_id = _payload().get("messageId")
    if not message_id:
        return {"error": "Message ID and User ID required"}, 400

    message = MessageRepository.get_by_message_id(user_id, message_id)
    if message is None:
        return {"error": "Message not found"}, 404

    if message.has_cached_analysis:
        analysis, cached = pipeline.analyzer.get_or_compute_analysis(message)
    else:
        usage_check = usage_service.can_analyze_message(user_id)
        if not usage_check.allowed:
            return {
                "error": usage_check.reason,
                "usage": usage_check.usage.model_dump(mode="json") if usage_check.usage else None,
                "upgrade_required": True,
            }, 403
        business_rules = business_rule_repository.list_business_rules(user_id, active_only=True)
        analysis, cached = pipeline.analyzer.get_or_compute_analysis(message, business_rules)
        usage_service.increment_message_count(user_id)
        logger.info(f"✅ Lazy-loaded AI analysis for {message.message_type}: {message_id}")

    return {"success": True, "cached": cached, "analysis": analysis.model_dump(by_alias=True)}, 200


# --- Approval queue -----------------------------------------------------------

@api_handler("GET /api/auto-reply/queue")
def get_queue(user_id: int) -> Response:
    limit = request.args.get("limit", default=50, type=int)
    items = reply_queue_service.list_pending(user_id, limit)
    return {"items": models_to_list(items), "count": len(items)}, 200


@api_handler("POST /api/auto-reply/approve")
def approve_reply(user_id: int) -> Response:
    body = _payload()
    queue_item_id = parse_user_id(body.get("queueItemId"))
    if queue_item_id is None:
        return {"error": "Queue item ID required"}, 400

    try:
        entry = reply_queue_service.approve_queue_item(user_id, queue_item_id, body.get("editedReply"))
    except reply_queue_service.QueueItemNotFoundError:
        return {"error": "Queue item not found"}, 404
    except reply_queue_service.QueueItemAlreadyProcessedError as e:
        return {"error": str(e)}, 409
    except InstagramAPIError as e:
        return {"error": "Failed to send reply", "details": str(e)}, 500

    return {"success": True, "item": model_to_dict(entry), "message": "Reply sent successfully"}, 200


@api_handler("POST /api/auto-reply/reject")
def reject_reply(user_id: int) -> Response:
    body = _payload()
    queue_item_id = parse_user_id(body.get("queueItemId"))
    if queue_item_id is None:
        return {"error": "Queue item ID required"}, 400

    try:
        entry = reply_queue_service.reject_queue_item(user_id, queue_item_id, body.get("reason"))
    except reply_queue_service.QueueItemNotFoundError:
        return {"error": "Queue item not found"}, 404
    except reply_queue_service.QueueItemAlreadyProcessedError as e:
        return {"error": str(e)}, 409

    return {"success": True, "item": model_to_dict(entry)}, 200


@api_handler("GET /api/auto-reply/logs")
def get_reply_logs(user_id: int) -> Response:
    limit = request.args.get("limit", default=50, type=int)
    logs = reply_log_repository.list_reply_logs(user_id, limit, request.args.get("reply_type"))
    return {"logs": models_to_list(logs)}, 200


# --- Automation rules ---------------------------------------------------------

@api_handler("GET /api/automation-rules")
def list_automation_rules(user_id: int) -> Response:
    rules = AutomationRuleRepository.list_rules(user_id)
    return {"rules": models_to_list(rules), "stats": get_automation_rule_stats(rules)}, 200


@api_handler("POST /api/automation-rules")
def create_automation_rule(user_id: int) -> Response:
    data = _payload()
    data.setdefault("trigger_type", "both")
    errors = validate_automation_rule(data)
    if errors:
        return {"error": "Validation failed", "errors": errors}, 400
    rule = AutomationRuleRepository.create_rule(user_id, data)
    return {"rule": model_to_dict(rule)}, 201


@api_handler("PUT /api/automation-rules/<id>")
def update_automation_rule(user_id: int, rule_id: int) -> Response:
    existing = AutomationRuleRepository.get_rule(user_id, rule_id)
    if existing is None:
        return {"error": "Rule not found"}, 404

    data = _payload()
    merged = {**model_to_dict(existing), **data}
    errors = validate_automation_rule(merged)
    if errors:
        return {"error": "Validation failed", "errors": errors}, 400
    rule = AutomationRuleRepository.update_rule(user_id, rule_id, data)
    return {"rule": model_to_dict(rule)}, 200


@api_handler("DELETE /api/automation-rules/<id>")
def delete_automation_rule(user_id: int, rule_id: int) -> Response:
    if not AutomationRuleRepository.delete_rule(user_id, rule_id):
        return {"error": "Rule not found"}, 404
    return {"success": True}, 200


@api_handler("POST /api/automation-rules/<id>/test")
def try_automation_rule(user_id: int, rule_id: int) -> Response:
    rule = AutomationRuleRepository.get_rule(user_id, rule_id)
    if rule is None:
        return {"error": "Rule not found"}, 404

    messages = _payload().get("messages")
    if not isinstance(messages, list) or not messages or not all(isinstance(m, str) for m in messages):
        return {"error": "messages must be a non-empty list of strings"}, 400
    return {"rule_id": rule.id, "results": test_automation_rule(rule, messages)}, 200


# --- Business rules -----------------------------------------------------------

@api_handler("GET /api/business-rules")
def list_business_rules(user_id: int) -> Response:
    rules = business_rule_repository.list_business_rules(user_id)
    rule_type = request.args.get("rule_type")
    if rule_type:
        rules = [r for r in rules if r.rule_type == rule_type]
    return {"rules": models_to_list(rules)}, 200


@api_handler("POST /api/business-rules")
def create_business_rule(user_id: int) -> Response:
    data = _payload()
    errors = validate_business_rule(data)
    if errors:
        return {"error": "Validation failed", "errors": errors}, 400
    rule = business_rule_repository.create_business_rule(user_id, data)
    return {"rule": model_to_dict(rule)}, 201


@api_handler("PUT /api/business-rules/<id>")
def update_business_rule(user_id: int, rule_id: int) -> Response:
    data = _payload()
    errors = validate_business_rule(data, partial=True)
    if errors:
        return {"error": "Validation failed", "errors": errors}, 400
    rule = business_rule_repository.update_business_rule(user_id, rule_id, data)
    if rule is None:
        return {"error": "Rule not found"}, 404
    return {"rule": model_to_dict(rule)}, 200


@api_handler("DELETE /api/business-rules/<id>")
def delete_business_rule(user_id: int, rule_id: int) -> Response:
    if not business_rule_repository.delete_business_rule(user_id, rule_id):
        return {"error": "Rule not found"}, 404
    return {"success": True}, 200


# --- Settings, inbox, usage ---------------------------------------------------

def _auto_reply_settings(profile) -> Dict[str, Any]:
    return {
        "auto_reply_dms_enabled": profile.auto_reply_dms_enabled,
        "auto_reply_comments_enabled": profile.auto_reply_comments_enabled,
    }


@api_handler("GET /api/settings/auto-reply")
def get_auto_reply_settings(user_id: int) -> Response:
    profile = profile_repository.get_profile_by_id(user_id)
    if profile is None:
        return {"error": "Failed to fetch settings"}, 404
    return _auto_reply_settings(profile), 200


@api_handler("PUT /api/settings/auto-reply")
def update_auto_reply_settings(user_id: int) -> Response:
    data = _payload()
    profile = profile_repository.update_auto_reply_settings(
        user_id,
        dms_enabled=parse_optional_bool(data.get("auto_reply_dms_enabled")),
        comments_enabled=parse_optional_bool(data.get("auto_reply_comments_enabled")),
    )
    if profile is None:
        return {"error": "Failed to update settings"}, 404
    return {"success": True, **_auto_reply_settings(profile)}, 200


@api_handler("GET /api/unified-inbox")
def get_unified_inbox(user_id: int) -> Response:
    inbox_filter = request.args.get("filter", "all")
    if inbox_filter not in INBOX_FILTERS:
        return {"error": f"Invalid filter. Must be one of: {', '.join(INBOX_FILTERS)}"}, 400
    inbox = inbox_service.build_unified_inbox(user_id, inbox_filter)
    return {
        "success": True,
        "items": [to_json_dict(item) for item in inbox["items"]],
        "total": inbox["total"],
        "stats": inbox["stats"],
    }, 200


@api_handler("POST /api/quick-reply")
def quick_reply(user_id: int) -> Response:
    body = _payload()
    item_type, source_id, reply_text = body.get("itemType"), body.get("sourceId"), body.get("replyText")
    if not item_type or not source_id or not reply_text:
        return {"error": "itemType, sourceId and replyText are required"}, 400

    profile = profile_repository.get_profile_by_id(user_id)
    if profile is None or not profile.instagram_connected:
        return {"error": "Instagram not connected"}, 400

    try:
        reply_id = inbox_service.send_quick_reply(user_id, item_type, source_id, reply_text, body.get("senderId"))
    except (InstagramAPIError, ValueError) as e:
        return {"error": "Failed to send reply", "details": str(e)}, 500
    return {"success": True, "replyId": reply_id, "message": "Reply sent successfully"}, 200


@api_handler("POST /api/messages/ignore")
def ignore_messages(user_id: int) -> Response:
    body = _payload()
    message_ids = body.get("messageIds") or ([body["messageId"]] if body.get("messageId") else [])
    if not message_ids:
        return {"error": "messageId or messageIds required"}, 400
    archived = inbox_service.ignore_messages(user_id, message_ids)
    return {"success": True, "archived": archived}, 200


@api_handler("POST /api/messages/generate-reply")
def generate_reply(user_id: int, pipeline: ReplyPipeline) -> Response:
    body = _payload()
    message_id = body.get("messageId")
    if not message_id:
        return {"error": "Message ID required"}, 400
    language = body.get("language")
    if language is not None and language not in ("fi", "en"):
        return {"error": 'language must be "fi" or "en"'}, 400

    message = MessageRepository.get_by_message_id(user_id, message_id)
    if message is None:
        return {"error": "Message not found"}, 404

    business_rules = business_rule_repository.list_business_rules(user_id, active_only=True)
    reply = pipeline.analyzer.draft_custom_reply(message, body.get("context") or "", language, business_rules)
    return {"success": True, "reply": reply}, 200


@api_handler("POST /api/messages/add-to-pending")
def add_to_pending(user_id: int) -> Response:
    body = _payload()
    item_type, source_id, ai_suggestion = body.get("itemType"), body.get("sourceId"), body.get("aiSuggestion")
    if not item_type or not source_id or not ai_suggestion:
        return {"error": "Missing required fields"}, 400

    try:
        entry = inbox_service.add_to_pending(user_id, item_type, source_id, ai_suggestion)
    except inbox_service.MessageNotFoundError:
        return {"error": "Item not found"}, 404
    except inbox_service.AlreadyQueuedError as e:
        return {"error": str(e)}, 409
    return {"success": True, "item": model_to_dict(entry)}, 200


@api_handler("PATCH /api/messages/<id>/mark-replied")
def mark_message_replied(user_id: int, message_pk: int) -> Response:
    body = _payload()
    replied = parse_optional_bool(body.get("replied"))
    if replied is None:
        return {"error": "replied must be true or false"}, 400

    message = inbox_service.mark_message_replied(user_id, message_pk, replied, body.get("reply_text"))
    if message is None:
        return {"error": "Message not found"}, 404
    return {"success": True, "message": model_to_dict(message)}, 200


@api_handler("POST /api/messages/archive-old")
def archive_old_messages(user_id: int) -> Response:
    days_old = _payload().get("daysOld") or inbox_service.DEFAULT_ARCHIVE_DAYS
    if isinstance(days_old, bool) or not isinstance(days_old, int):
        return {"error": "daysOld must be a whole number of days"}, 400

    try:
        archived = inbox_service.archive_old_answered(user_id, days_old)
    except ValueError as e:
        return {"error": str(e)}, 400

    archived_messages, archived_comments = archived[Channel.DM.value], archived[Channel.COMMENT.value]
    logger.info(f"📦 Archived {archived_messages} messages and {archived_comments} comments older than {days_old} days")
    return {
        "success": True,
        "archivedMessages": archived_messages,
        "archivedComments": archived_comments,
        "message": f"Archived {archived_messages + archived_comments} total items",
    }, 200


@api_handler("GET /api/subscriptions/usage")
def get_usage(user_id: int) -> Response:
    usage = usage_service.get_user_usage_stats(user_id)
    if usage is None:
        return {"error": "Could not fetch usage statistics"}, 500
    return usage.model_dump(mode="json"), 200
