from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

import httpx

from empleos.core.config import get_settings

logger = logging.getLogger(__name__)


class EmailClient:
    """Posts transactional messages to an HTTP mail API.

    Without a configured API URL messages are only logged, which keeps local
    development and tests free of outbound traffic.
    """

    def __init__(
        self,
        *,
        api_url: str | None,
        api_key: str | None,
        sender: str,
        frontend_url: str,
        timeout_seconds: float,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    async def send(self, *, to: str, subject: str, text: str) -> bool:
        if not self.api_url:
            logger.info("mail api not configured; skipping message to=%s subject=%s", to, subject)
            return False

        headers: dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload: dict[str, Any] = {"from": self.sender, "to": to, "subject": subject, "text": text}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("mail delivery failed to=%s subject=%s error=%s", to, subject, exc)
            return False
        return True

    async def send_verification_email(self, *, to: str, first_name: str | None, token: str) -> bool:
        link = f"{self.frontend_url}/verify-email?token={token}"
        greeting = f"Hola {first_name}," if first_name else "Hola,"
        return await self.send(
            to=to,
            subject="Verifica tu correo - Empleos Inclusivos",
            text=f"{greeting}\n\nConfirma tu cuenta en Empleos Inclusivos ingresando a:\n{link}\n",
        )

    async def send_password_reset_email(self, *, to: str, token: str) -> bool:
        link = f"{self.frontend_url}/reset-password?token={token}"
        return await self.send(
            to=to,
            subject="Restablece tu contraseña - Empleos Inclusivos",
            text=(
                "Recibimos una solicitud para restablecer tu contraseña.\n"
                f"Puedes crear una nueva ingresando a:\n{link}\n\n"
                "Si no solicitaste este cambio, ignora este mensaje.\n"
            ),
        )

    async def send_application_received_email(self, *, to: str, job_title: str) -> bool:
        return await self.send(
            to=to,
            subject="Postulación recibida - Empleos Inclusivos",
            text=f"Tu postulación a \"{job_title}\" fue recibida correctamente.\n",
        )


@lru_cache
def get_email_client() -> EmailClient:
    settings = get_settings()
    return EmailClient(
        api_url=settings.mail_api_url,
        api_key=settings.mail_api_key,
        sender=settings.mail_from,
        frontend_url=settings.frontend_url,
        timeout_seconds=settings.mail_timeout_seconds,
    )
