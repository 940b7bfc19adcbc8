"""
Envelope cipher for the core-banking API.

The wire format is fixed by the backend: AES-256-CBC with PKCS7 padding, the
key being the first 32 hex chars of sha256(k) taken as ASCII bytes and the IV
being the 16-char ``i`` string itself. Ciphertext travels base64-encoded.
"""
import base64
import hashlib
import json
import secrets
import string
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ussd_gateway.core.errors import EnvelopeError
from ussd_gateway.settings import settings

KEY_ALPHABET = string.ascii_letters + string.digits
IV_ALPHABET = string.ascii_letters + string.digits + "-_"
TXN_ALPHABET = string.ascii_uppercase + string.digits

KEY_LEN = 64
IV_LEN = 16
TXN_LEN = 8


@dataclass(frozen=True)
class Envelope:
    k: str
    i: str
    r: str

    def as_body(self) -> dict:
        return {"k": self.k, "i": self.i, "r": self.r}


def _derive_key(key: str) -> bytes:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32].encode("utf-8")


def _cipher(key: str, iv: str) -> Cipher:
    iv_bytes = iv.encode("utf-8")
    if len(iv_bytes) != 16:
        raise EnvelopeError(f"IV must be 16 bytes, got {len(iv_bytes)}")
    return Cipher(algorithms.AES(_derive_key(key)), modes.CBC(iv_bytes))


def encrypt_text(text: str, key: str, iv: str) -> str:
    padder = padding.PKCS7(128).padder()
    data = padder.update(text.encode("utf-8")) + padder.finalize()
    enc = _cipher(key, iv).encryptor()
    return base64.b64encode(enc.update(data) + enc.finalize()).decode("ascii")


def decrypt_text(b64: str, key: str, iv: str) -> str:
    try:
        raw = base64.b64decode((b64 or "").strip(), validate=True)
        dec = _cipher(key, iv).decryptor()
        padded = dec.update(raw) + dec.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
    except EnvelopeError:
        raise
    except (ValueError, UnicodeDecodeError) as e:
        raise EnvelopeError(f"Undecryptable payload: {e}") from e


def random_key() -> str:
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_LEN))


def random_iv() -> str:
    return "".join(secrets.choice(IV_ALPHABET) for _ in range(IV_LEN))


def transaction_id() -> str:
    return "".join(secrets.choice(TXN_ALPHABET) for _ in range(TXN_LEN))


def wrap_pin(pin: str) -> str:
    """PIN fields go out under a fixed key/iv pair, never in the clear."""
    return encrypt_text(str(pin), settings.PIN_CIPHER_KEY, settings.PIN_CIPHER_IV)


def seal(payload: dict) -> Envelope:
    k, i = random_key(), random_iv()
    return Envelope(k=k, i=i, r=encrypt_text(json.dumps(payload, separators=(",", ":")), k, i))


def open_reply(body: str, k: str, i: str) -> Any:
    """
    Decrypt a backend reply with the request's key/iv and parse it.
    Some gateways base64-wrap the JSON a second time ("eyJ" == '{"').
    """
    plain = decrypt_text(body, k, i).strip()
    if plain.startswith("eyJ"):
        try:
            plain = base64.b64decode(plain).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise EnvelopeError(f"Bad inner base64: {e}") from e
    try:
        return json.loads(plain)
    except json.JSONDecodeError as e:
        raise EnvelopeError(f"Reply is not JSON: {e}") from e
