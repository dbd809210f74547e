import pytest

from callrelay.services import phone


SAMPLES = [
    "3331234567",
    "+393331234567",
    "0039 333 123 4567",
    "393331234567@s.whatsapp.net",
    "333-123-4567",
    "333123456",
    "3912345678",
    "+1 (415) 555-0100",
    "abc",
    "",
    "  ",
    "361",
]


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_is_idempotent(raw):
    once = phone.normalize(raw)
    assert phone.normalize(once) == once


def test_bare_domestic_number_gets_country_prefix():
    n = phone.normalize("3331234567")
    assert n == "393331234567"
    assert n.startswith("39") and len(n) == 12


def test_ten_digits_already_starting_with_prefix_is_kept():
    assert phone.normalize("3912345678") == "3912345678"


def test_plus_and_transport_suffix_are_dropped():
    assert phone.normalize("+39 333 123 4567") == "393331234567"
    assert phone.normalize("393331234567@s.whatsapp.net") == "393331234567"
    assert phone.normalize("393331234567@c.us") == "393331234567"


def test_normalize_is_total():
    assert phone.normalize(None) == ""
    assert phone.normalize(3331234567) == "393331234567"
    assert phone.normalize("no digits here") == ""


def test_comparison_key():
    assert phone.comparison_key("393331234567") == "3331234567"
    assert phone.comparison_key("12345") == "12345"
    assert phone.comparison_key("") == ""


@pytest.mark.parametrize(
    "a,b",
    [
        ("3331234567", "+393331234567"),
        ("393331234567@s.whatsapp.net", "333 123 4567"),
        ("00393331234567", "3331234567"),
        ("333123456", "+39333123456"),
    ],
)
def test_same_contact_across_formats(a, b):
    assert phone.phones_match(a, b)
    assert phone.phones_match(b, a)


@pytest.mark.parametrize(
    "a,b",
    [
        ("3331234567", "3331234568"),
        ("361", "393331234361"),
        ("", "3331234567"),
        (None, None),
        ("abc", "def"),
    ],
)
def test_different_or_garbage_numbers_do_not_match(a, b):
    assert not phone.phones_match(a, b)
    assert not phone.phones_match(b, a)


def test_match_is_symmetric_over_samples():
    for a in SAMPLES:
        for b in SAMPLES:
            assert phone.phones_match(a, b) == phone.phones_match(b, a)


def test_keys_match_suffix_rule():
    assert phone.keys_match("3331234567", "3331234567")
    assert phone.keys_match("333123456", "9333123456")
    assert not phone.keys_match("23456", "3331234567")
