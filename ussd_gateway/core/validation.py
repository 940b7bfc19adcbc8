"""
Keystroke validation.

Each check is pure: (value, spec) -> Valid(normalized) | Invalid(message).
Normalization happens here so the engine only ever stores normalized values.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ussd_gateway.core.errors import UnknownValidationType
from ussd_gateway.settings import settings

_DIGITS = re.compile(r"^\d+$")
_ALNUM = re.compile(r"^[A-Za-z0-9 ]+$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_UNSAFE_TEXT = re.compile(r"[<>\"'&]")


@dataclass(frozen=True)
class ValidationSpec:
    type: str
    options: Dict[str, Any] = field(default_factory=dict)

    def opt(self, name: str, default=None):
        return self.options.get(name, default)


@dataclass(frozen=True)
class Valid:
    value: str
    ok: bool = True


@dataclass(frozen=True)
class Invalid:
    message: str
    ok: bool = False


class Validator:
    """Dispatch table of input checks. Instances are read-only and shared."""

    def __init__(
        self,
        country_code: str = None,
        phone_length: int = None,
        network_prefixes: Optional[Dict[str, list]] = None,
        min_amount: int = None,
        max_amount: int = None,
    ):
        self.country_code = country_code or settings.COUNTRY_CODE
        self.phone_length = int(phone_length or settings.PHONE_LENGTH)
        self.network_prefixes = network_prefixes if network_prefixes is not None else settings.network_prefixes()
        self.min_amount = int(min_amount if min_amount is not None else settings.MIN_AMOUNT)
        self.max_amount = int(max_amount if max_amount is not None else settings.MAX_AMOUNT)
        self._checks = {
            "numeric": self._numeric,
            "phone": self._phone,
            "amount": self._amount,
            "menu_option": self._menu_option,
            "account": self._account,
            "pin": self._pin,
            "text": self._text,
            "alphanumeric": self._alphanumeric,
            "email": self._email,
        }

    def known_types(self) -> Tuple[str, ...]:
        return tuple(self._checks.keys())

    def ensure_known(self, spec: ValidationSpec) -> None:
        if spec.type not in self._checks:
            raise UnknownValidationType(spec.type)

    def validate(self, value: str, spec: ValidationSpec):
        check = self._checks.get(spec.type)
        if check is None:
            raise UnknownValidationType(spec.type)
        return check((value or "").strip(), spec)

    # ------------------------------------------------------------------

    def _numeric(self, value: str, spec: ValidationSpec):
        if not _DIGITS.match(value):
            return Invalid("Must contain only digits")
        exact = spec.opt("exact_length")
        if exact and len(value) != int(exact):
            return Invalid(f"Must be exactly {exact} digits")
        lo = spec.opt("min_length")
        if lo and len(value) < int(lo):
            return Invalid(f"Must be at least {lo} digits")
        hi = spec.opt("max_length")
        if hi and len(value) > int(hi):
            return Invalid(f"Cannot exceed {hi} digits")
        return Valid(value)

    def _phone(self, value: str, spec: ValidationSpec):
        if not _DIGITS.match(value):
            return Invalid("Must contain only digits")

        cc = self.country_code
        if value.startswith("0"):
            normalized = cc + value[1:]
        elif not value.startswith(cc):
            normalized = cc + value
        else:
            normalized = value

        if len(normalized) != self.phone_length:
            return Invalid("Invalid phone number length")

        networks = spec.opt("networks") or ([spec.opt("network")] if spec.opt("network") else [])
        if networks:
            matched = False
            for net in networks:
                prefixes = self.network_prefixes.get(str(net).lower(), [])
                if not prefixes or any(normalized.startswith(p) for p in prefixes):
                    matched = True
                    break
            if not matched:
                label = "/".join(str(n).upper() for n in networks)
                return Invalid(f"Must be a valid {label} number")

        return Valid(normalized)

    def _amount(self, value: str, spec: ValidationSpec):
        if not _DIGITS.match(value):
            return Invalid("Must contain only digits")
        amount = int(value)
        lo = int(spec.opt("min", self.min_amount))
        hi = int(spec.opt("max", self.max_amount))
        if amount < lo:
            return Invalid(f"Minimum amount is {lo}")
        if amount > hi:
            return Invalid(f"Maximum amount is {hi}")
        return Valid(str(amount))

    def _menu_option(self, value: str, spec: ValidationSpec):
        choices = spec.opt("choices") or ()
        if value not in choices:
            return Invalid("Invalid selection. Please try again.")
        return Valid(value)

    def _account(self, value: str, spec: ValidationSpec):
        if not _DIGITS.match(value):
            return Invalid("Must contain only digits")
        lo = spec.opt("min_length")
        if lo and len(value) < int(lo):
            return Invalid("Account number too short")
        hi = spec.opt("max_length")
        if hi and len(value) > int(hi):
            return Invalid("Account number too long")
        return Valid(value)

    def _pin(self, value: str, spec: ValidationSpec):
        length = int(spec.opt("length", 4))
        if not _DIGITS.match(value) or len(value) != length:
            return Invalid(f"PIN must be {length} digits")
        return Valid(value)

    def _text(self, value: str, spec: ValidationSpec):
        cleaned = _UNSAFE_TEXT.sub("", value).strip()
        lo = int(spec.opt("min_length", 1))
        hi = int(spec.opt("max_length", 100))
        if len(cleaned) < lo:
            return Invalid(f"Must be at least {lo} characters")
        if len(cleaned) > hi:
            return Invalid(f"Cannot exceed {hi} characters")
        return Valid(cleaned)

    def _alphanumeric(self, value: str, spec: ValidationSpec):
        if not _ALNUM.match(value):
            return Invalid("Only letters and numbers are allowed")
        lo = spec.opt("min_length")
        if lo and len(value) < int(lo):
            return Invalid(f"Must be at least {lo} characters")
        hi = spec.opt("max_length")
        if hi and len(value) > int(hi):
            return Invalid(f"Cannot exceed {hi} characters")
        return Valid(value)

    def _email(self, value: str, spec: ValidationSpec):
        if not _EMAIL.match(value):
            return Invalid("Invalid email address")
        return Valid(value.lower())
