from __future__ import annotations

from typing import Any, Protocol

from velora.config import Config
from velora.errors import DeliveryError


def _debug(msg: str) -> None:
    print(f"[mail] {msg}")


class Mailer(Protocol):
    def send(self, *, to_email: str, subject: str, text: str) -> None: ...


def _get_sdk() -> Any:
    try:
        import sib_api_v3_sdk  # type: ignore
    except Exception as e:
        raise DeliveryError("mail_sdk_missing") from e
    return sib_api_v3_sdk


class BrevoMailer:
    """Send transactional email through Brevo (formerly Sendinblue)."""

    def __init__(self, cfg: Config):
        self.cfg = cfg

    def _api(self, sdk: Any) -> Any:
        if not self.cfg.BREVO_API_KEY:
            raise DeliveryError("mail_not_configured")
        configuration = sdk.Configuration()
        configuration.api_key["api-key"] = self.cfg.BREVO_API_KEY
        return sdk.TransactionalEmailsApi(sdk.ApiClient(configuration))

    def send(self, *, to_email: str, subject: str, text: str) -> None:
        sdk = _get_sdk()
        api = self._api(sdk)
        from sib_api_v3_sdk.rest import ApiException  # type: ignore

        message = sdk.SendSmtpEmail(
            to=[{"email": to_email}],
            sender={"name": self.cfg.MAIL_SENDER_NAME, "email": self.cfg.MAIL_SENDER_EMAIL},
            subject=subject,
            text_content=text,
        )
        try:
            resp = api.send_transac_email(message)
        except ApiException as e:
            _debug(f"send_transac_email failed to={to_email} status={getattr(e, 'status', '?')}")
            raise DeliveryError("mail_send_failed") from e
        _debug(f"sent to={to_email} message_id={getattr(resp, 'message_id', '?')}")


def send_otp_email(mailer: Mailer, *, email: str, code: str, ttl_minutes: int) -> None:
    mailer.send(
        to_email=email,
        subject="Your Velora Login Code",
        text=f"Your login code is: {code}. This code expires in {ttl_minutes} minutes.",
    )
