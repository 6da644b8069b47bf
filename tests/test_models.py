from __future__ import annotations

import pytest

from nestrelay.exceptions import BadRequestError
from nestrelay.models import AccessTokenResponse, LinkedAccount, NestSnapshot, StateToken
from nestrelay.models._base import validate_attributes


def test_snapshot_keeps_thermostat_attributes_verbatim() -> None:
    payload = {
        "devices": {
            "thermostats": {
                "dev-a": {
                    "name": "Hall",
                    "humidity": 42,
                    "ambient_temperature_c": 21.5,
                    "has_leaf": True,
                    "where_id": None,
                    "schedule": [{"at": "07:00", "target": 20}],
                },
            },
            "smoke_co_alarms": {"alarm-1": {"name": "Kitchen"}},
        },
        "metadata": {"user_id": "user-1", "access_token": "token-1", "client_version": 3},
        "structures": {"s-1": {"name": "Home", "away": "home"}},
    }

    snapshot = NestSnapshot.model_validate(payload)

    assert snapshot.user_id == "user-1"
    assert snapshot.thermostats == {"dev-a": payload["devices"]["thermostats"]["dev-a"]}  # type: ignore[index]
    assert snapshot.metadata.client_version == 3


def test_snapshot_without_devices_has_no_thermostats() -> None:
    snapshot = NestSnapshot.model_validate({"metadata": {"user_id": "user-1", "access_token": "t"}})

    assert snapshot.thermostats == {}


def test_access_token_response_ignores_extra_fields() -> None:
    token = AccessTokenResponse.model_validate({"access_token": "c.abc", "expires_in": 315360000, "scope": "x"})

    assert token.access_token == "c.abc"
    assert token.expires_in == 315360000


def test_state_token_missing_used_flag_counts_as_used() -> None:
    assert StateToken.from_document("t1", {"used": False}).used is False
    assert StateToken.from_document("t2", {"used": True}).used is True
    assert StateToken.from_document("t3", {}).used is True
    assert StateToken.from_document("t4", {"used": 0}).used is True


def test_linked_account_document_holds_only_access_token() -> None:
    account = LinkedAccount(user_id="user-1", access_token="token-1")

    assert account.to_document() == {"access_token": "token-1"}


def test_validate_attributes_accepts_nested_json() -> None:
    attrs = {"humidity": 40, "extra": {"nested": [1, 2.5, None, True, "x"]}}

    assert validate_attributes(attrs) == attrs


@pytest.mark.parametrize("value", [[1, 2], "text", 42, None])
def test_validate_attributes_rejects_non_objects(value: object) -> None:
    with pytest.raises(BadRequestError, match="must be a JSON object"):
        validate_attributes(value)


def test_validate_attributes_rejects_non_json_values() -> None:
    with pytest.raises(BadRequestError, match="not JSON-compatible"):
        validate_attributes({"when": object()})
