"""
API module for docsync - the webhook receiver.
"""

from .webhook import WebhookReceiver, WebhookServer, create_webhook_app

__all__ = [
    "WebhookReceiver",
    "WebhookServer",
    "create_webhook_app",
]
