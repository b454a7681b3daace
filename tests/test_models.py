"""Tests for pydantic parsing of ioBroker payloads."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from pyiobroker.models import IobObject, IobState, parse_iob_timestamp
from pyiobroker.state.events import FeedbackKind, Registration

# ------------------------------------------------------------------
# Timestamps
# ------------------------------------------------------------------


class TestParseTimestamp:
    def test_milliseconds(self) -> None:
        assert parse_iob_timestamp(1700000000000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)

    def test_seconds(self) -> None:
        assert parse_iob_timestamp(1700000000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, True, "soon", object()])
    def test_invalid(self, value: object) -> None:
        assert parse_iob_timestamp(value) is None


# ------------------------------------------------------------------
# IobState
# ------------------------------------------------------------------


class TestIobState:
    def test_full_payload(self) -> None:
        raw = {
            "val": 21.5,
            "ack": True,
            "ts": 1700000000000,
            "lc": 1699999990000,
            "from": "system.adapter.hue.0",
            "q": 0,
            "user": "system.user.admin",
            "future_field": "ignored",
        }

        state = IobState.model_validate(raw)

        assert state.val == 21.5
        assert state.ack is True
        assert state.from_ == "system.adapter.hue.0"
        assert state.written_at == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
        assert state.changed_at is not None
        assert state.raw == raw

    def test_minimal_payload_defaults(self) -> None:
        state = IobState.model_validate({"val": None})

        assert state.ack is False
        assert state.ts is None
        assert state.written_at is None

    def test_numeric_ack_and_string_timestamp_coerced(self) -> None:
        state = IobState.model_validate({"val": "on", "ack": 1, "ts": "1700000000000", "lc": "later"})

        assert state.ack is True
        assert state.ts == 1700000000000
        assert state.lc is None

    def test_structured_values(self) -> None:
        assert IobState.model_validate({"val": {"r": 255}}).val == {"r": 255}
        assert IobState.model_validate({"val": [1, 2]}).val == [1, 2]

    def test_frozen(self) -> None:
        state = IobState(val=True)

        with pytest.raises(ValidationError):
            state.val = False  # type: ignore[misc]


# ------------------------------------------------------------------
# IobObject
# ------------------------------------------------------------------


class TestIobObject:
    def test_boolean_state_object(self) -> None:
        obj = IobObject.model_validate(
            {
                "_id": "alias.0.living.lamp",
                "type": "state",
                "common": {"name": {"en": "Lamp", "de": "Lampe"}, "type": "boolean", "role": "switch", "write": True},
                "native": {"id": 3},
            }
        )

        assert obj.id == "alias.0.living.lamp"
        assert obj.is_boolean_state
        assert obj.is_writable
        assert obj.common.display_name("de") == "Lampe"
        assert obj.common.display_name("fr") == "Lamp"
        assert obj.native == {"id": 3}

    def test_read_only_number(self) -> None:
        obj = IobObject.model_validate(
            {"_id": "hue.0.sensor.temp", "common": {"name": "Temp", "type": "number", "write": False, "unit": "°C"}}
        )

        assert not obj.is_boolean_state
        assert not obj.is_writable
        assert obj.common.display_name() == "Temp"

    def test_missing_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            IobObject.model_validate({"type": "state"})


# ------------------------------------------------------------------
# Registration
# ------------------------------------------------------------------


class TestRegistration:
    def test_ids_are_stripped(self) -> None:
        registration = Registration(entity_id=" lamp1 ", dependent_id="fb-A", kind=FeedbackKind.READ_VALUE)

        assert registration.entity_id == "lamp1"

    def test_kind_accepts_value(self) -> None:
        registration = Registration(entity_id="lamp1", dependent_id="fb-A", kind="channel_state")

        assert registration.kind is FeedbackKind.CHANNEL_STATE

    @pytest.mark.parametrize("entity_id", ["", "   "])
    def test_empty_ids_rejected(self, entity_id: str) -> None:
        with pytest.raises(ValidationError):
            Registration(entity_id=entity_id, dependent_id="fb-A", kind=FeedbackKind.READ_VALUE)


# ------------------------------------------------------------------
# Package surface
# ------------------------------------------------------------------


def test_package_exposes_version_and_public_api() -> None:
    import pyiobroker

    assert isinstance(pyiobroker.__version__, str)
    assert pyiobroker.__version__
    for name in pyiobroker.__all__:
        assert hasattr(pyiobroker, name), name
