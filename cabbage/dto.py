"""Wire representations of webhooks and banking consumers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from .banking import Consumer
from .webhooks import Provider, Webhook

_ZERO_TIME = "0001-01-01T00:00:00Z"
_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)


def _format_rfc3339(value: Optional[datetime]) -> str:
    """Format a time as RFC 3339 without fractional seconds; None is the zero time."""
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    stamp = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return stamp + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = int(abs(offset).total_seconds()) // 60
    return f"{stamp}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _parse_rfc3339(text: Any, key: str) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp; JSON null gives None."""
    if text is None:
        return None
    if not isinstance(text, str):
        raise ValueError(f"field {key!r}: expected a timestamp string")
    match = _RFC3339.match(text)
    if match is None:
        raise ValueError(f"field {key!r}: invalid RFC 3339 timestamp {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction[1:] + "000000")[:6]) if fraction else 0
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    try:
        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
        )
    except ValueError as err:
        raise ValueError(f"field {key!r}: {err}") from err


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _get_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r}: expected a string")
    return value


def _get_int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r}: expected an integer")
    return value


def _get_bool(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r}: expected a boolean")
    return value


def _get_str_list(data: Mapping[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"field {key!r}: expected a list of strings")
    return list(value)


@dataclass
class WebhookResponse:
    """A webhook as returned by the HTTP API."""

    id: str
    webhook_name: str
    created_at: str
    updated_at: str
    endpoint: str
    partner_id: str
    status: str
    failures: int
    last_failure: Optional[str] = None
    registration_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """The JSON object for this response; empty optional fields are left out."""
        result: dict[str, Any] = {
            "id": self.id,
            "webhookName": self.webhook_name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "endpoint": self.endpoint,
            "partnerId": self.partner_id,
            "status": self.status,
            "failures": self.failures,
        }
        if self.last_failure is not None:
            result["lastFailure"] = self.last_failure
        if self.registration_id:
            result["registrationId"] = self.registration_id
        return result


def webhook_to_response(webhook: Webhook) -> WebhookResponse:
    """Convert a domain webhook to its API response."""
    return WebhookResponse(
        id=webhook.id,
        webhook_name=str(webhook.webhook_name),
        created_at=_format_rfc3339(webhook.created_at),
        updated_at=_format_rfc3339(webhook.updated_at),
        endpoint=webhook.endpoint,
        partner_id=webhook.partner_id,
        status=webhook.status,
        failures=webhook.failures,
        last_failure=(
            _format_rfc3339(webhook.last_failure) if webhook.last_failure is not None else None
        ),
    )


@dataclass
class UpwardliWebhookDTO:
    """A webhook registration as the banking partner reports it."""

    id: str = ""
    webhook_name: str = ""
    endpoint: str = ""
    partner_id: str = ""
    status: str = ""
    failures: int = 0
    last_failure: Optional[datetime] = None
    registration_id: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "UpwardliWebhookDTO":
        """Build from a decoded JSON object; raises ValueError on bad fields."""
        data = _require_mapping(data)
        return cls(
            id=_get_str(data, "id"),
            webhook_name=_get_str(data, "webhook_name"),
            endpoint=_get_str(data, "endpoint"),
            partner_id=_get_str(data, "partner_id"),
            status=_get_str(data, "status"),
            failures=_get_int(data, "failures"),
            last_failure=_parse_rfc3339(data.get("last_failure"), "last_failure"),
            registration_id=_get_str(data, "registration_id"),
        )

    def to_domain(self) -> Webhook:
        """The domain webhook, tagged with the Upwardli provider."""
        return Webhook(
            id=self.id,
            webhook_name=self.webhook_name,
            endpoint=self.endpoint,
            partner_id=self.partner_id,
            status=self.status,
            failures=self.failures,
            last_failure=self.last_failure,
            provider=Provider.UPWARDLI,
        )


@dataclass
class UpwardliConsumerDTO:
    """A consumer as the banking partner reports it."""

    id: str = ""
    pcid: str = ""
    external_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    is_active: bool = False
    kyc_status: str = ""
    phone_number: str = ""
    date_of_birth: str = ""
    tax_id_type: str = ""
    tax_identifier: str = ""
    address_line1: str = ""
    address_line2: str = ""
    address_city: str = ""
    address_state: str = ""
    address_zip: str = ""
    credit_lines: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "UpwardliConsumerDTO":
        """Build from a decoded JSON object; raises ValueError on bad fields."""
        data = _require_mapping(data)
        return cls(
            id=_get_str(data, "id"),
            pcid=_get_str(data, "pcid"),
            external_id=_get_str(data, "external_id"),
            first_name=_get_str(data, "first_name"),
            last_name=_get_str(data, "last_name"),
            email=_get_str(data, "email"),
            is_active=_get_bool(data, "is_active"),
            kyc_status=_get_str(data, "kyc_status"),
            phone_number=_get_str(data, "phone_number"),
            date_of_birth=_get_str(data, "date_of_birth"),
            tax_id_type=_get_str(data, "tax_id_type"),
            tax_identifier=_get_str(data, "tax_identifier"),
            address_line1=_get_str(data, "address_line1"),
            address_line2=_get_str(data, "address_line2"),
            address_city=_get_str(data, "address_city"),
            address_state=_get_str(data, "address_state"),
            address_zip=_get_str(data, "address_zip"),
            credit_lines=_get_str_list(data, "credit_lines"),
        )

    def to_domain(self) -> Consumer:
        """The domain consumer; personal details are not carried over."""
        return Consumer(
            id=self.id,
            pcid=self.pcid,
            external_id=self.external_id,
            is_active=self.is_active,
            kyc_status=self.kyc_status,
            tax_id_type=self.tax_id_type,
            tax_identifier=self.tax_identifier,
        )