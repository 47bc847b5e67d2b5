from __future__ import annotations

import pytest
from pydantic import ValidationError

from crossstore.models import ControlType, Entry, ErrorInfo, Operation, RequestMessage, ResponseMessage, control_type


def test_entry_accepts_wire_and_field_names() -> None:
    wire = Entry.model_validate({"value": {"a": 1}, "expiresAt": 1500})
    by_name = Entry(value={"a": 1}, expires_at=1500)

    assert wire == by_name
    assert wire.to_record() == {"value": {"a": 1}, "expiresAt": 1500}


def test_entry_expiry_boundary() -> None:
    entry = Entry(value="v", expires_at=1000)

    assert not entry.is_expired(999)
    assert entry.is_expired(1000)
    assert not Entry(value="v").is_expired(10**15)


def test_entry_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        Entry.model_validate({"value": 1, "ttl": 5})


def test_request_keeps_none_arguments_on_the_wire() -> None:
    request = RequestMessage(id="c:1", operation=Operation.SET, args=["k", None])

    assert request.to_wire() == {"id": "c:1", "operation": "set", "args": ["k", None]}


def test_request_rejects_unknown_operation_and_empty_id() -> None:
    with pytest.raises(ValidationError):
        RequestMessage.model_validate({"id": "c:1", "operation": "drop", "args": []})
    with pytest.raises(ValidationError):
        RequestMessage.model_validate({"id": "", "operation": "get", "args": ["k"]})


def test_response_wire_shapes() -> None:
    absent = ResponseMessage(id="c:1", result=None)
    assert absent.to_wire() == {"id": "c:1", "result": None}

    failed = ResponseMessage(id="c:2", error=ErrorInfo(code="StorageFailure", message="disk"))
    assert failed.to_wire() == {"id": "c:2", "error": {"code": "StorageFailure", "message": "disk"}}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ({"type": "ready"}, ControlType.READY),
        ({"type": "poll"}, ControlType.POLL),
        ({"type": "other"}, None),
        ({"type": "ready", "id": "x"}, None),
        ({"id": "x", "result": 1}, None),
        ("ready", None),
    ],
)
def test_control_type_detection(raw: object, expected: ControlType | None) -> None:
    assert control_type(raw) is expected
