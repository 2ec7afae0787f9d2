"""Outbound transactional email through the Mailgun HTTP API.

Every send returns a :class:`core.result.Result`. Email is a best-effort
side channel: a missing configuration or a provider failure is logged and
reported as ``Err`` but never raised, so the operation that triggered the
email still succeeds.
"""

from datetime import datetime

import httpx
import jinja2
from config.config import settings
from core.errors import DownstreamDegraded
from core.logging import logger
from core.result import Err, Ok, Result
from core.template_helper import render_template


class Mailer:
    """Thin async client for Mailgun's `messages` endpoint.

    Attributes:
        api_key: Mailgun API key.
        domain: Sending domain registered with Mailgun.
        base_url: API base (US or EU region).
    """

    provider = "mailgun"

    def __init__(
        self,
        api_key: str = settings.MAILGUN_API_KEY,
        domain: str = settings.MAILGUN_DOMAIN,
        base_url: str = settings.MAILGUN_BASE_URL,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.domain = (domain or "").strip().lower()
        self.base_url = (base_url or "").strip().rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.domain)

    def _sender(self) -> str:
        return f"{settings.MAIL_FROM_NAME} <{settings.MAIL_FROM_EMAIL}>"

    async def send(
        self, to: str, subject: str, html: str, text: str | None = None
    ) -> Result[str]:
        """Send one message.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: Rendered HTML body.
            text: Optional plain-text alternative.

        Returns:
            Result[str]: ``Ok`` with the provider message id, or ``Err``.
        """
        if not self.configured:
            logger.warning("Email NOT sent to={} subject={}: mailgun not configured", to, subject)
            return Err(DownstreamDegraded(self.provider, "not configured"))

        url = f"{self.base_url}/v3/{self.domain}/messages"
        data = {
            "from": self._sender(),
            "to": to,
            "subject": subject,
            "html": html,
            "text": text or "",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, auth=("api", self.api_key), data=data)
        except httpx.HTTPError as exc:
            logger.warning("Email to={} failed: {}", to, exc)
            return Err(DownstreamDegraded(self.provider, f"{type(exc).__name__}: {exc}"))

        if not response.is_success:
            logger.warning(
                "Email to={} rejected status={} body={}",
                to,
                response.status_code,
                response.text[:300],
            )
            return Err(DownstreamDegraded(self.provider, f"HTTP {response.status_code}"))

        try:
            message_id = (response.json() or {}).get("id", "")
        except ValueError:
            message_id = ""
        logger.info("Email sent to={} subject={} id={}", to, subject, message_id)
        return Ok(message_id)

    def _render(self, template_name: str, /, **context) -> Result[str]:
        try:
            return Ok(
                render_template(
                    template_name,
                    app_name=settings.APP_NAME,
                    year=datetime.now().year,
                    **context,
                )
            )
        except jinja2.TemplateError as exc:
            return Err(DownstreamDegraded("templates", f"{template_name}: {exc}"))

    async def send_verification(self, to: str, name: str | None, token: str) -> Result[str]:
        url = f"{settings.FRONTEND_URL.rstrip('/')}/verify-email?token={token}"
        rendered = self._render("verification.html", name=name or "there", verification_url=url)
        if not rendered.ok:
            return rendered
        return await self.send(to, "Verify Your Email", rendered.value, f"Verify your email: {url}")

    async def send_two_factor_code(self, to: str, code: str) -> Result[str]:
        ttl = settings.TWO_FACTOR_CODE_TTL_MINUTES
        rendered = self._render("two_factor_code.html", code=code, ttl_minutes=ttl)
        if not rendered.ok:
            return rendered
        return await self.send(
            to,
            "Your Two-Factor Authentication (2FA) Code",
            rendered.value,
            f"Your sign-in code is {code}. It expires in {ttl} minutes.",
        )

    async def send_password_reset(self, to: str, name: str | None, token: str) -> Result[str]:
        ttl = settings.PASSWORD_RESET_TTL_MINUTES
        url = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password?token={token}"
        rendered = self._render(
            "reset_password.html", name=name or "there", reset_url=url, ttl_minutes=ttl
        )
        if not rendered.ok:
            return rendered
        return await self.send(
            to, "Password Reset Request", rendered.value, f"Reset your password: {url}"
        )

    async def send_notification(
        self, to: str, subject: str, content: str, title: str | None = None
    ) -> Result[str]:
        rendered = self._render("notification.html", title=title, content=content)
        if not rendered.ok:
            return rendered
        return await self.send(to, subject, rendered.value, content)


_mailer = Mailer()


def get_mailer() -> Mailer:
    """FastAPI dependency returning the shared mailer."""
    return _mailer
