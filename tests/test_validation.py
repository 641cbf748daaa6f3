"""Tests for account ID, external ID and role ARN validation."""

import pytest
from hypothesis import given, strategies as st

from spotsave.core.exceptions import InvalidAccountIdError
from spotsave.services.policies import generate_external_id, generate_role_arn
from spotsave.utils.validation import (
    extract_account_id_from_arn,
    sanitize_external_id,
    validate_account_id,
    validate_external_id,
    validate_role_arn,
)

ROLE_NAME_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789+=,.@_-"
EXTERNAL_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_"

account_ids = st.text(alphabet="0123456789", min_size=12, max_size=12)
role_names = st.text(alphabet=ROLE_NAME_ALPHABET, min_size=1, max_size=64)


class TestAccountId:

    def test_accepts_twelve_digits(self):
        assert validate_account_id("123456789012")

    def test_trims_whitespace(self):
        assert validate_account_id("  123456789012 ")

    @pytest.mark.parametrize("value", ["12345678901", "1234567890123", "12345678901a", "", "１２３４５６７８９０１２"])
    def test_rejects_other_shapes(self, value):
        assert not validate_account_id(value)

    def test_non_string_is_rejected(self):
        assert not validate_account_id(123456789012)


class TestExternalId:

    def test_length_boundaries(self):
        assert not validate_external_id("a")
        assert validate_external_id("ab")
        assert validate_external_id("a" * 1224)
        assert not validate_external_id("a" * 1225)

    @pytest.mark.parametrize("value", ["has space", "dot.ted", "slash/id", "emoji-☃"])
    def test_rejects_disallowed_characters(self, value):
        assert not validate_external_id(value)

    def test_sanitize_trims(self):
        assert sanitize_external_id("  abc-123\n") == "abc-123"

    @given(st.text(alphabet=EXTERNAL_ID_ALPHABET, min_size=2, max_size=1224))
    def test_allowed_alphabet_always_passes(self, external_id):
        assert validate_external_id(external_id)

    def test_generated_ids_are_valid_and_distinct(self):
        ids = {generate_external_id() for _ in range(20)}
        assert len(ids) == 20
        assert all(validate_external_id(i) for i in ids)


class TestRoleArn:

    def test_valid_arn(self):
        assert validate_role_arn("arn:aws:iam::123456789012:role/SpotSaveReadOnlyRole")

    @pytest.mark.parametrize("value", [
        "arn:aws:iam::12345678901:role/Short",
        "arn:aws:iam::123456789012:user/NotARole",
        "arn:aws:iam::123456789012:role/",
        "arn:aws:sts::123456789012:role/Wrong",
        "arn:aws:iam::123456789012:role/bad name",
        "",
    ])
    def test_invalid_arns(self, value):
        assert not validate_role_arn(value)

    def test_extract_account_id(self):
        assert extract_account_id_from_arn("arn:aws:iam::123456789012:role/Anything") == "123456789012"
        assert extract_account_id_from_arn("not-an-arn") is None
        assert extract_account_id_from_arn(None) is None

    @given(account_id=account_ids, role_name=role_names)
    def test_generated_arns_round_trip(self, account_id, role_name):
        arn = generate_role_arn(account_id, role_name)
        assert validate_role_arn(arn)
        assert extract_account_id_from_arn(arn) == account_id

    @pytest.mark.parametrize("value", ["12345", "12345678901a", "1234567890123"])
    def test_generate_role_arn_rejects_bad_account(self, value):
        with pytest.raises(InvalidAccountIdError):
            generate_role_arn(value)

    def test_invalid_account_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            generate_role_arn("nope")
