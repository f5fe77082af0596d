"""
Tests for field masking.
"""
import re

import pytest
from hypothesis import given, strategies as st

from apps.rbac.masking import (
    MaskingConfig, REDACTED_TEXT, apply_list_masking, apply_mask, apply_object_masking,
    authorize_and_mask, mask_address, mask_amount, mask_credit_card, mask_email,
    mask_generic, mask_name, mask_phone, mask_ssn, remove_hidden_fields, should_hide_field,
)
from apps.rbac.services import AssignmentService


class TestPartialStrategies:
    """Each partial strategy keeps only the identifying tail or head."""

    @pytest.mark.parametrize('func, value, expected', [
        (mask_email, 'john.doe@example.com', 'j*******@example.com'),
        (mask_phone, '+1-555-123-4567', '+1-******-4567'),
        (mask_phone, '5551234567', '******4567'),
        (mask_credit_card, '4532-1234-5678-9012', '****-****-****-9012'),
        (mask_credit_card, '4532123456789012', '************9012'),
        (mask_ssn, '123-45-6789', '***-**-6789'),
        (mask_address, '123 Main Street, Apt 4B', '*** Main Street, Apt ***'),
        (mask_name, 'John Michael Doe', 'J*** M****** D**'),
        (mask_amount, '$1,234.56', '$*****.56'),
        (mask_generic, 'abcdefgh', 'abcd****'),
        (mask_generic, 'abc', '***'),
    ])
    def test_examples(self, func, value, expected):
        assert func(value) == expected

    def test_malformed_values_fall_back(self):
        assert mask_email('not-an-email') == 'not-********'
        assert mask_ssn('12-34') == '*****'
        assert mask_phone('12') == '**'

    def test_config_overrides(self):
        config = MaskingConfig(mask_char='#', email_domain_visible=False)
        assert mask_email('ann@example.com', config) == 'a##@###########'


class TestApplyMask:
    """Mask type dispatch."""

    def test_none_and_empty(self):
        assert apply_mask(None, 'hidden') == ''
        assert apply_mask('x', None) == 'x'
        assert apply_mask('x', 'none') == 'x'
        assert apply_mask('', 'partial', 'email') == ''

    def test_partial_uses_field_type(self):
        assert apply_mask('123-45-6789', 'partial', 'ssn') == '***-**-6789'
        assert apply_mask('secretvalue', 'partial') == 'secr*******'

    def test_non_string_values(self):
        assert apply_mask(1234567, 'hidden') == '*******'

    @given(st.text())
    def test_hidden_preserves_length(self, value):
        masked = apply_mask(value, 'hidden')
        assert masked == '*' * len(value)

    @given(st.text())
    def test_redacted_is_constant(self, value):
        assert apply_mask(value, 'redacted') == REDACTED_TEXT

    @given(st.text())
    def test_encrypted_is_deterministic_token(self, value):
        token = apply_mask(value, 'encrypted')
        assert re.fullmatch(r'\[ENCRYPTED:[0-9A-F]{8}\]', token)
        assert token == apply_mask(value, 'encrypted')


class TestObjectMasking:

    def test_object_and_list(self):
        record = {'email': 'ann@example.com', 'ssn': '123-45-6789', 'id': 7}
        masks = {'email': {'mask_type': 'partial', 'field_type': 'email'}, 'ssn': 'hidden', 'missing': 'hidden'}

        masked = apply_object_masking(record, masks)

        assert masked == {'email': 'a**@example.com', 'ssn': '***********', 'id': 7}
        assert record['ssn'] == '123-45-6789'
        assert apply_list_masking([record, record], masks) == [masked, masked]

    def test_remove_hidden_fields(self):
        record = {'a': 1, 'b': 2, 'c': 3}
        result = remove_hidden_fields(record, {'a': 'hidden', 'b': {'mask_type': 'redacted'}, 'c': 'partial'})
        assert result == {'c': 3}
        assert should_hide_field('encrypted') is False


@pytest.mark.django_db
class TestAuthorizeAndMask:

    def test_drops_unreadable_and_masks_readable(self, make_role):
        role = make_role('support', permissions=[
            {'entity': 'user', 'field': 'email', 'action': 'read', 'mask_type': 'partial'},
            {'entity': 'user', 'field': 'name', 'action': 'read'},
        ])
        AssignmentService.assign_role('u1', role.id)

        result = authorize_and_mask(
            {'email': 'john.doe@example.com', 'name': 'John', 'ssn': '123-45-6789'},
            'u1', 'user', field_types={'email': 'email'},
        )

        assert result == {'email': 'j*******@example.com', 'name': 'John'}

    def test_user_without_roles_sees_nothing(self, db):
        assert authorize_and_mask({'email': 'a@b.c'}, 'nobody', 'user') == {}
