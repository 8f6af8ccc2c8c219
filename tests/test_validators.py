import pytest

from receipt_ledger.errors import ValidationError
from receipt_ledger.models import DatasetKind
from receipt_ledger.validators import (parse_edit_value, sanitize_form_data, validate_amount,
                                       validate_date, validate_master_item)


def test_validate_date():
    assert validate_date('2025-08-01')[0]
    assert validate_date('2025/8/1')[0]
    assert not validate_date('08/01/2025')[0]
    assert not validate_date('2025-02-30')[0]
    assert not validate_date('')[0]


def test_validate_amount():
    assert validate_amount('1,280')[0]
    assert validate_amount('0')[0]
    assert not validate_amount('-5')[0]
    assert not validate_amount('12.5')[0]


def test_validate_master_item():
    assert validate_master_item(DatasetKind.CATEGORY, '娯楽費', None) == (True, [])
    ok, errors = validate_master_item(DatasetKind.PAYMENT_TYPE, '楽天カード', '')
    assert not ok
    assert errors == ["Payment methods require a type name"]
    assert not validate_master_item(DatasetKind.GROUP, 'x' * 101, None)[0]


def test_parse_edit_value_converts_types():
    assert parse_edit_value('amount', ' 1,280 ') == 1280
    assert parse_edit_value('category_id', '3') == 3
    assert parse_edit_value('group_id', '') is None
    assert parse_edit_value('detail', ' 昼食 ') == '昼食'
    assert parse_edit_value('date', '2025-08-01') == '2025-08-01'


@pytest.mark.parametrize('field, raw', [
    ('amount', 'abc'),
    ('amount', '-1'),
    ('date', '2025-13-01'),
    ('user_id', 'taro'),
    ('original_amount', '1'),
])
def test_parse_edit_value_rejects(field, raw):
    with pytest.raises(ValidationError):
        parse_edit_value(field, raw)


def test_sanitize_form_data():
    assert sanitize_form_data({'price': ' 800 ', 'n': 1}) == {'price': '800', 'n': 1}
