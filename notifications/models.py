from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class BuildResult(str, Enum):
    """Terminal status of a CI build."""

    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    NOT_BUILT = "NOT_BUILT"
    ABORTED = "ABORTED"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str) -> "BuildResult":
        try:
            return cls((text or "").strip().upper())
        except ValueError:
            raise ValueError(f"Unknown build result: {text!r}") from None


@dataclass(frozen=True, slots=True)
class NotificationConfig:
    """Gateway credentials and the base URL used in message bodies."""

    account_sid: str = ""
    auth_token: str = ""
    sender_number: str = ""
    base_url: str = ""

    @property
    def is_complete(self) -> bool:
        return all((self.account_sid, self.auth_token, self.sender_number, self.base_url))

    def __repr__(self) -> str:
        token = "****" if self.auth_token else ""
        return (
            f"NotificationConfig(account_sid={self.account_sid!r}, auth_token={token!r}, "
            f"sender_number={self.sender_number!r}, base_url={self.base_url!r})"
        )


@dataclass(frozen=True, slots=True)
class BuildOutcome:
    """A finished build as reported by the CI server."""

    project_name: str
    result: BuildResult
    url: str


@dataclass(slots=True)
class DispatchResult:
    recipient: str
    sent: bool
    code: Optional[int] = None
    message: Optional[str] = None


class GatewayError(Exception):
    """Raised by a messaging gateway when a message could not be sent."""

    def __init__(self, code: Optional[int], message: str):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Form validation feedback for a single field."""

    kind: str
    message: str = ""

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls("ok")

    @classmethod
    def error(cls, message: str) -> "ValidationResult":
        return cls("error", message)

    @property
    def is_ok(self) -> bool:
        return self.kind == "ok"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}
