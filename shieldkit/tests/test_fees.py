from decimal import Decimal

import pytest

from shieldkit.crypto.fees import calculate_fee, with_fee_buffer
from shieldkit.errors import EncodingError, InvalidPrice
from shieldkit.tests import configure_test_logging

configure_test_logging()


def test_reference_fee():
    # gas 1 * 1e6 at price 2 -> 500000, plus 1% of 1000 -> 10
    assert calculate_fee(1000, 2, 1, 1, 1_000_000) == 500010


def test_refund_and_fractional_percent():
    assert calculate_fee(10_000, 1, "0.5", 2, 100, refund=50) == 250 + 50
    assert calculate_fee(999, Decimal("1"), "0.1", 0, 0) == 0


def test_fee_rounds_down():
    assert calculate_fee(0, 3, 0, 1, 10) == 3
    assert calculate_fee(199, 1, 1, 0, 0) == 1


def test_fee_is_monotone_in_amount_and_gas():
    assert calculate_fee(2000, 2, 1, 1, 1000) > calculate_fee(1000, 2, 1, 1, 1000)
    assert calculate_fee(1000, 2, 1, 2, 1000) > calculate_fee(1000, 2, 1, 1, 1000)


@pytest.mark.parametrize("price", [0, -1, "NaN", "Infinity"])
def test_invalid_price(price):
    with pytest.raises(InvalidPrice):
        calculate_fee(1000, price, 1, 1, 1)


def test_invalid_percent():
    with pytest.raises(EncodingError):
        calculate_fee(1000, 1, -1, 1, 1)
    with pytest.raises(EncodingError):
        calculate_fee(1000, 1, "lots", 1, 1)


def test_fee_buffer():
    assert with_fee_buffer(500010) == 500510
    assert with_fee_buffer(1000, per_mille=0) == 1000
    assert with_fee_buffer(999) == 999
