import pytest
from pydantic import ValidationError
from schemas.auth import TwoFactorRequired
from schemas.notifications import (
    AdminNotificationRequest,
    KycRef,
    related_from_columns,
    related_to_columns,
)


def test_related_reference_survives_column_storage():
    columns = related_to_columns(KycRef(id="kyc-9"))
    assert columns == ("kyc", "kyc-9")
    assert related_from_columns(*columns) == KycRef(id="kyc-9")


def test_missing_related_columns_mean_no_reference():
    assert related_to_columns(None) == (None, None)
    assert related_from_columns(None, None) is None
    assert related_from_columns("kyc", None) is None


def test_unknown_related_kind_rejected():
    with pytest.raises(ValidationError):
        related_from_columns("spaceship", "1")


def test_admin_request_accepts_camel_case_and_defaults_to_system():
    request = AdminNotificationRequest.model_validate({"userId": 3, "content": "hi"})
    assert request.user_id == 3
    assert request.category.value == "system"
    assert request.related is None


def test_two_factor_required_wire_shape():
    body = TwoFactorRequired(user_id=1, email="a@example.com").model_dump(by_alias=True)
    assert body == {"requires2FA": True, "userId": 1, "email": "a@example.com"}
