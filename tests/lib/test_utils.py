import pytest

from app.lib.utils import is_hex_address, normalize_address, page_offset, to_prefixed_address


@pytest.mark.parametrize(
    "address,expected",
    [
        ("0xABCdef", "abcdef"),
        ("abcdef", "abcdef"),
        ("  0XABCDEF ", "abcdef"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_address(address, expected):
    assert normalize_address(address) == expected


def test_is_hex_address():
    assert is_hex_address("0x" + "Ab" * 20)
    assert is_hex_address("ab" * 32, length=32)
    assert not is_hex_address("ab" * 20, length=32)
    assert not is_hex_address("0xnothex")
    assert not is_hex_address("0x")
    assert not is_hex_address(None)


def test_to_prefixed_address():
    assert to_prefixed_address("ABCD") == "0xabcd"
    assert to_prefixed_address("0xABCD") == "0xabcd"


def test_page_offset():
    assert page_offset(1, 10) == 0
    assert page_offset(3, 25) == 50
