from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from .channels import SmsGateway
from .config import DISPLAY_NAME
from .models import BuildOutcome, BuildResult, DispatchResult, GatewayError, NotificationConfig, ValidationResult
from .validation import check_numbers_to_notify, split_numbers

LOGGER = logging.getLogger(__name__)


class ConfigProvider(Protocol):
    def current(self) -> NotificationConfig:
        ...


def compose_message(project_name: str, status: object, base_url: str, relative_url: str) -> str:
    return f"Job {project_name} finished with status {status}. See details at {base_url}{relative_url}"


def notify_build(
    outcome: BuildOutcome,
    numbers_to_notify: Optional[str],
    config: NotificationConfig,
    gateway: SmsGateway,
    listener: logging.Logger = LOGGER,
) -> List[DispatchResult]:
    """Send one SMS per configured number when the build was not successful.

    Failures are logged on ``listener`` per recipient and never raised.
    """
    if outcome.result == BuildResult.SUCCESS:
        return []

    listener.info("Notifying unsuccessful build by SMS")
    if not config.is_complete:
        listener.warning("SMS gateway is not configured; notification skipped")
        return []

    body = compose_message(outcome.project_name, outcome.result, config.base_url, outcome.url)
    results: List[DispatchResult] = []
    for number in split_numbers(numbers_to_notify):
        try:
            gateway.send(to=number, from_=config.sender_number, body=body)
        except GatewayError as exc:
            listener.error("Cannot send SMS to %s. Reason: %s, %s", number, exc.code, exc.message)
            results.append(DispatchResult(number, sent=False, code=exc.code, message=exc.message))
        except Exception as exc:
            listener.exception("Cannot send SMS to %s. Reason: %s, %s", number, None, exc)
            results.append(DispatchResult(number, sent=False, message=str(exc)))
        else:
            results.append(DispatchResult(number, sent=True))
    return results


class SmsNotifier:
    """Build step that texts a job's recipients about unsuccessful builds."""

    display_name = DISPLAY_NAME

    def __init__(self, numbers_to_notify: str):
        self.numbers_to_notify = numbers_to_notify
        self.last_results: List[DispatchResult] = []

    @staticmethod
    def check_numbers_to_notify(value: Optional[str]) -> ValidationResult:
        return check_numbers_to_notify(value)

    def perform(
        self,
        outcome: BuildOutcome,
        config_provider: ConfigProvider,
        gateway: SmsGateway,
        listener: logging.Logger = LOGGER,
    ) -> bool:
        config = config_provider.current()
        self.last_results = notify_build(outcome, self.numbers_to_notify, config, gateway, listener)
        return True

    def __repr__(self) -> str:
        return f"SmsNotifier(numbers_to_notify={self.numbers_to_notify!r})"


__all__ = ["ConfigProvider", "compose_message", "notify_build", "SmsNotifier"]
