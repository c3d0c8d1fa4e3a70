"""出站 Webhook 投递适配器"""
from .http_sender import HttpWebhookSender, sign_payload

__all__ = ["HttpWebhookSender", "sign_payload"]
