"""
基于 httpx 的 Webhook 发送器

每次投递一个 POST 请求：
- 请求体为通知中已序列化的 payload，原样发送
- 携带通知ID / 事件类型 / 第几次投递等请求头
- 配置了签名密钥时附带 X-Signature（HMAC-SHA256，Base64）
"""
import base64
import hashlib
import hmac
import time
from typing import Dict, Optional

import httpx

from application.ports.webhook_sender import DeliveryResult
from core.logging_config import get_logger
from domain.webhook.entity import WebhookNotification


logger = get_logger(__name__)


def sign_payload(secret: str, payload: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class HttpWebhookSender:
    """WebhookSender 的 httpx 实现"""

    def __init__(
        self,
        timeout: float = 10.0,
        *,
        signing_secret: Optional[str] = None,
        user_agent: str = "PaymentGateway-Webhook/1.0",
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            timeout: 单次请求超时（秒），连接与读取共用
            signing_secret: 签名密钥，为空时不签名
            user_agent: User-Agent 请求头
            transport: 自定义传输层（测试中注入 httpx.MockTransport）
        """
        self.timeout = timeout
        self.signing_secret = signing_secret
        self.verify_ssl = verify_ssl
        self.default_headers = {
            "Content-Type": "application/json",
            "User-Agent": user_agent,
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                verify=self.verify_ssl,
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    def build_headers(self, notification: WebhookNotification) -> Dict[str, str]:
        headers = {
            **self.default_headers,
            "X-Notification-ID": notification.id,
            "X-Event-Type": notification.event_type,
            # 本次是第几次投递
            "X-Attempt": str(notification.attempt_count + 1),
        }
        if self.signing_secret:
            headers["X-Signature"] = sign_payload(self.signing_secret, notification.payload)
        return headers

    async def send(self, notification: WebhookNotification) -> DeliveryResult:
        """投递一次；传输层异常向上抛出，由投递引擎记为失败"""
        start = time.monotonic()
        response = await self.client.post(
            notification.target_url,
            content=notification.payload.encode("utf-8"),
            headers=self.build_headers(notification),
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        result = DeliveryResult.from_status(response.status_code, elapsed_ms, response.text)
        logger.debug(
            "webhook_http_response",
            notification_id=notification.id,
            status_code=response.status_code,
            elapsed_ms=round(elapsed_ms, 2),
        )
        return result

    async def aclose(self) -> None:
        """关闭HTTP客户端"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
