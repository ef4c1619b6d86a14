from __future__ import annotations

from typing import Optional, Protocol

import requests

from .config import DEFAULT_GATEWAY_API_URL, DEFAULT_SEND_TIMEOUT
from .models import GatewayError


class SmsGateway(Protocol):
    """Anything able to deliver one text message to one phone number."""

    def send(self, to: str, from_: str, body: str) -> None:
        ...


class TwilioGateway:
    """Sends SMS through the Twilio Messages REST resource."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        api_url: str = DEFAULT_GATEWAY_API_URL,
        timeout: float = DEFAULT_SEND_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def messages_url(self) -> str:
        return f"{self.api_url}/2010-04-01/Accounts/{self.account_sid}/Messages.json"

    def send(self, to: str, from_: str, body: str) -> None:
        payload = {"To": to, "From": from_, "Body": body}
        try:
            resp = self.session.post(
                self.messages_url,
                data=payload,
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayError(None, str(exc)) from exc

        if resp.status_code >= 400:
            raise _error_from_response(resp)


def _error_from_response(resp: requests.Response) -> GatewayError:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        code = data.get("code")
        message = data.get("message")
        if code is not None or message:
            return GatewayError(code if code is not None else resp.status_code, message or resp.text[:120])
    return GatewayError(resp.status_code, resp.text[:120])


__all__ = ["SmsGateway", "TwilioGateway"]
