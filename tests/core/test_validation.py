import pytest

from ussd_gateway.core.errors import UnknownValidationType
from ussd_gateway.core.validation import Invalid, Valid, ValidationSpec, Validator

V = Validator(
    country_code="256",
    phone_length=12,
    network_prefixes={"mtn": ["25677", "25678"], "airtel": ["25670", "25675"]},
    min_amount=100,
    max_amount=5000000,
)


@pytest.mark.parametrize("value,expected", [
    ("99", Invalid("Minimum amount is 100")),
    ("100", Valid("100")),
    ("5000000", Valid("5000000")),
    ("5000001", Invalid("Maximum amount is 5000000")),
    ("0250", Valid("250")),
    ("12a", Invalid("Must contain only digits")),
])
def test_amount_bounds_are_inclusive(value, expected):
    assert V.validate(value, ValidationSpec("amount")) == expected


def test_amount_options_override_defaults():
    spec = ValidationSpec("amount", {"min": 500, "max": 1000})
    assert V.validate("400", spec) == Invalid("Minimum amount is 500")
    assert V.validate("1001", spec) == Invalid("Maximum amount is 1000")


@pytest.mark.parametrize("raw", ["0772123456", "772123456", "256772123456", " 0772123456 "])
def test_phone_is_normalized_to_country_format(raw):
    assert V.validate(raw, ValidationSpec("phone")) == Valid("256772123456")


def test_phone_length_and_network_checks():
    assert V.validate("07721234", ValidationSpec("phone")) == Invalid("Invalid phone number length")
    assert V.validate("0701234567", ValidationSpec("phone", {"network": "mtn"})) == Invalid(
        "Must be a valid MTN number"
    )
    assert V.validate("0701234567", ValidationSpec("phone", {"network": "airtel"})).ok
    assert V.validate("0701234567", ValidationSpec("phone", {"networks": ["mtn", "airtel"]})).ok


def test_pin_must_be_exact_digits():
    spec = ValidationSpec("pin", {"length": 4})
    assert V.validate("1234", spec) == Valid("1234")
    assert V.validate("123", spec) == Invalid("PIN must be 4 digits")
    assert V.validate("12345", spec) == Invalid("PIN must be 4 digits")
    assert V.validate("12a4", spec) == Invalid("PIN must be 4 digits")


def test_numeric_lengths():
    assert V.validate("1234", ValidationSpec("numeric", {"exact_length": 4})).ok
    assert V.validate("123", ValidationSpec("numeric", {"exact_length": 4})) == Invalid("Must be exactly 4 digits")
    assert V.validate("1", ValidationSpec("numeric", {"min_length": 2})) == Invalid("Must be at least 2 digits")
    assert V.validate("123", ValidationSpec("numeric", {"max_length": 2})) == Invalid("Cannot exceed 2 digits")


def test_account_length_messages():
    spec = ValidationSpec("account", {"min_length": 4, "max_length": 6})
    assert V.validate("123", spec) == Invalid("Account number too short")
    assert V.validate("1234567", spec) == Invalid("Account number too long")
    assert V.validate("12345", spec) == Valid("12345")


def test_menu_option():
    spec = ValidationSpec("menu_option", {"choices": ["1", "2"]})
    assert V.validate("2", spec).ok
    assert V.validate("3", spec) == Invalid("Invalid selection. Please try again.")


def test_text_is_sanitized():
    assert V.validate("<b>rent</b> & 'fees'", ValidationSpec("text")) == Valid("brent/b  fees")
    assert V.validate("<>", ValidationSpec("text")) == Invalid("Must be at least 1 characters")
    assert V.validate("x" * 31, ValidationSpec("text", {"max_length": 30})) == Invalid("Cannot exceed 30 characters")


def test_alphanumeric_and_email():
    assert V.validate("Ab 12", ValidationSpec("alphanumeric")).ok
    assert not V.validate("Ab-12", ValidationSpec("alphanumeric")).ok
    assert V.validate("Jane@Example.COM", ValidationSpec("email")) == Valid("jane@example.com")
    assert V.validate("jane@", ValidationSpec("email")) == Invalid("Invalid email address")


def test_alphanumeric_length_bounds():
    spec = ValidationSpec("alphanumeric", {"min_length": 5, "max_length": 20})
    assert V.validate("AB12", spec) == Invalid("Must be at least 5 characters")
    assert V.validate("AB123", spec) == Valid("AB123")
    assert V.validate("A" * 21, spec) == Invalid("Cannot exceed 20 characters")


def test_unknown_type_is_a_configuration_error():
    with pytest.raises(UnknownValidationType):
        V.validate("1", ValidationSpec("postcode"))
    with pytest.raises(UnknownValidationType):
        V.ensure_known(ValidationSpec("postcode"))
    assert "pin" in V.known_types()
