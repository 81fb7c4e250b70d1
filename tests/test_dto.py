from datetime import datetime, timedelta, timezone

import pytest

from cabbage.banking import Consumer
from cabbage.dto import (
    UpwardliConsumerDTO,
    UpwardliWebhookDTO,
    WebhookResponse,
    webhook_to_response,
)
from cabbage.webhooks import Provider, Webhook


def _parse(text: str) -> datetime:
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def _webhook(**overrides) -> Webhook:
    values = dict(
        id="wh_1",
        webhook_name="Consumer.Created",
        endpoint="https://hooks.example.com/in",
        partner_id="partner-1",
        status="active",
        failures=3,
        created_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        updated_at=datetime(2024, 2, 3, 4, 5, 6, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return Webhook(**values)


def test_webhook_to_response_copies_fields():
    hook = _webhook()
    resp = webhook_to_response(hook)
    assert resp.id == hook.id
    assert resp.webhook_name == hook.webhook_name
    assert resp.endpoint == hook.endpoint
    assert resp.partner_id == hook.partner_id
    assert resp.status == hook.status
    assert resp.failures == hook.failures
    assert resp.last_failure is None
    assert resp.registration_id == ""


def test_utc_time_formats_with_z():
    resp = webhook_to_response(_webhook())
    assert resp.created_at == "2024-01-02T03:04:05Z"


def test_offset_time_round_trips():
    tz = timezone(timedelta(hours=2))
    created = datetime(2024, 6, 1, 12, 30, 0, tzinfo=tz)
    resp = webhook_to_response(_webhook(created_at=created))
    assert resp.created_at.endswith("+02:00")
    assert _parse(resp.created_at) == created


def test_fractional_seconds_are_dropped():
    updated = datetime(2024, 6, 1, 12, 30, 15, 987654, tzinfo=timezone.utc)
    resp = webhook_to_response(_webhook(updated_at=updated))
    assert _parse(resp.updated_at) == updated.replace(microsecond=0)


def test_missing_time_is_zero_time():
    resp = webhook_to_response(_webhook(created_at=None))
    assert resp.created_at == "0001-01-01T00:00:00Z"


def test_last_failure_is_formatted_and_included():
    failed = datetime(2024, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    resp = webhook_to_response(_webhook(last_failure=failed))
    assert _parse(resp.last_failure) == failed
    assert resp.to_dict()["lastFailure"] == resp.last_failure


def test_to_dict_omits_empty_optionals():
    data = webhook_to_response(_webhook()).to_dict()
    assert set(data) == {
        "id", "webhookName", "createdAt", "updatedAt",
        "endpoint", "partnerId", "status", "failures",
    }


def test_to_dict_includes_registration_id_when_set():
    resp = WebhookResponse(
        id="a", webhook_name="b", created_at="c", updated_at="d",
        endpoint="e", partner_id="f", status="g", failures=0, registration_id="reg",
    )
    assert resp.to_dict()["registrationId"] == "reg"


def test_webhook_dto_from_dict_to_domain():
    dto = UpwardliWebhookDTO.from_dict({
        "id": "wh_9",
        "webhook_name": "ACH.Sent",
        "endpoint": "https://hooks.example.com/ach",
        "partner_id": "partner-9",
        "status": "enabled",
        "failures": 2,
        "last_failure": "2024-05-06T07:08:09.123456789Z",
        "registration_id": "reg-9",
    })
    assert dto.registration_id == "reg-9"
    assert dto.last_failure == datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc)

    hook = dto.to_domain()
    assert hook.provider is Provider.UPWARDLI
    assert hook.id == "wh_9"
    assert hook.webhook_name == "ACH.Sent"
    assert hook.failures == 2
    assert hook.last_failure == dto.last_failure
    assert hook.registration_id == ""


def test_webhook_dto_offset_timestamp():
    dto = UpwardliWebhookDTO.from_dict({"last_failure": "2024-05-06T07:08:09-05:30"})
    expected = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone(-timedelta(hours=5, minutes=30)))
    assert dto.last_failure == expected


def test_webhook_dto_missing_and_null_fields_default():
    dto = UpwardliWebhookDTO.from_dict({"id": "x", "last_failure": None, "failures": None})
    assert dto == UpwardliWebhookDTO(id="x")


@pytest.mark.parametrize(
    "data",
    [
        {"failures": "many"},
        {"failures": True},
        {"failures": 1.5},
        {"id": 5},
        {"last_failure": "yesterday"},
        {"last_failure": "2024-13-01T00:00:00Z"},
        ["not", "an", "object"],
    ],
)
def test_webhook_dto_rejects_bad_data(data):
    with pytest.raises(ValueError):
        UpwardliWebhookDTO.from_dict(data)


def test_dto_round_trip_through_response():
    dto = UpwardliWebhookDTO(id="wh", webhook_name="PaymentCard.Closed", failures=4)
    resp = webhook_to_response(dto.to_domain())
    assert (resp.id, resp.webhook_name, resp.failures) == (dto.id, dto.webhook_name, dto.failures)


def test_consumer_dto_to_domain_keeps_banking_fields():
    dto = UpwardliConsumerDTO.from_dict({
        "id": "c1",
        "pcid": "pc1",
        "external_id": "ext1",
        "first_name": "Ada",
        "email": "ada@example.com",
        "is_active": True,
        "kyc_status": "approved",
        "tax_id_type": "ssn",
        "tax_identifier": "placeholder",
        "credit_lines": ["line-a", "line-b"],
    })
    assert dto.first_name == "Ada"
    assert dto.credit_lines == ["line-a", "line-b"]
    assert dto.to_domain() == Consumer(
        id="c1",
        pcid="pc1",
        external_id="ext1",
        is_active=True,
        kyc_status="approved",
        tax_id_type="ssn",
        tax_identifier="placeholder",
    )


@pytest.mark.parametrize(
    "data",
    [{"is_active": "yes"}, {"credit_lines": "line"}, {"credit_lines": [1]}, None],
)
def test_consumer_dto_rejects_bad_data(data):
    with pytest.raises(ValueError):
        UpwardliConsumerDTO.from_dict(data)