import logging

logging.basicConfig(level=logging.WARNING)
logging.getLogger('sqlalchemy.engine').setLevel(logging.ERROR)

from typing import Optional

from flask import Flask, request

from config import ENVIRONMENT
from services import api_service
from services.ai_service_factory import AIServiceFactory
from services.ai_service_interface import AIServiceInterface
from services.message_analyzer import MessageAnalyzer
from services.reply_pipeline import ReplyPipeline
from services.webhook_service import handle_webhook


def create_app(ai_service: Optional[AIServiceInterface] = None, pipeline: Optional[ReplyPipeline] = None) -> Flask:
    """Build the Flask app around one reply pipeline (provider chosen by AI_PROVIDER unless given)."""
    app = Flask(__name__)

    if pipeline is None:
        pipeline = ReplyPipeline(MessageAnalyzer(ai_service or AIServiceFactory.create_from_settings()))
    app.extensions["reply_pipeline"] = pipeline

    # Add security headers for production
    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        if ENVIRONMENT == 'production':
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    @app.route("/")
    def health():
        return {"status": "ok"}

    @app.route("/webhook", methods=["GET", "POST"])
    def webhook():
        return handle_webhook(pipeline)

    @app.post("/api/messages/sync")
    def messages_sync():
        return api_service.sync_messages(pipeline)

    @app.post("/api/comments/sync")
    def comments_sync():
        return api_service.sync_comments(pipeline)

    @app.post("/api/messages/analyze")
    def messages_analyze():
        return api_service.analyze_message(pipeline)

    @app.get("/api/auto-reply/queue")
    def auto_reply_queue():
        return api_service.get_queue()

    @app.post("/api/auto-reply/approve")
    def auto_reply_approve():
        return api_service.approve_reply()

    @app.post("/api/auto-reply/reject")
    def auto_reply_reject():
        return api_service.reject_reply()

    @app.get("/api/auto-reply/logs")
    def auto_reply_logs():
        return api_service.get_reply_logs()

    @app.route("/api/automation-rules", methods=["GET", "POST"])
    def automation_rules():
        if request.method == "POST":
            return api_service.create_automation_rule()
        return api_service.list_automation_rules()

    @app.route("/api/automation-rules/<int:rule_id>", methods=["PUT", "DELETE"])
    def automation_rule(rule_id):
        if request.method == "DELETE":
            return api_service.delete_automation_rule(rule_id)
        return api_service.update_automation_rule(rule_id)

    @app.post("/api/automation-rules/<int:rule_id>/test")
    def automation_rule_test(rule_id):
        return api_service.try_automation_rule(rule_id)

    @app.route("/api/business-rules", methods=["GET", "POST"])
    def business_rules():
        if request.method == "POST":
            return api_service.create_business_rule()
        return api_service.list_business_rules()

    @app.route("/api/business-rules/<int:rule_id>", methods=["PUT", "DELETE"])
    def business_rule(rule_id):
        if request.method == "DELETE":
            return api_service.delete_business_rule(rule_id)
        return api_service.update_business_rule(rule_id)

    @app.route("/api/settings/auto-reply", methods=["GET", "PUT"])
    def auto_reply_settings():
        if request.method == "PUT":
            return api_service.update_auto_reply_settings()
        return api_service.get_auto_reply_settings()

    @app.get("/api/unified-inbox")
    def unified_inbox():
        return api_service.get_unified_inbox()

    @app.post("/api/quick-reply")
    def quick_reply():
        return api_service.quick_reply()

    @app.post("/api/messages/ignore")
    def messages_ignore():
        return api_service.ignore_messages()

    @app.post("/api/messages/generate-reply")
    def messages_generate_reply():
        return api_service.generate_reply(pipeline)

    @app.post("/api/messages/add-to-pending")
    def messages_add_to_pending():
        return api_service.add_to_pending()

    @app.patch("/api/messages/<int:message_pk>/mark-replied")
    def message_mark_replied(message_pk):
        return api_service.mark_message_replied(message_pk)

    @app.post("/api/messages/archive-old")
    def messages_archive_old():
        return api_service.archive_old_messages()

    @app.get("/api/subscriptions/usage")
    def subscriptions_usage():
        return api_service.get_usage()

    return app
