import base64
import json

import pytest

from ussd_gateway.backend import crypto
from ussd_gateway.core.errors import EnvelopeError

KEY = "k" * 64
IV = "abcdefgh-_123456"


def test_encrypt_decrypt_round_trip():
    text = '{"Status":"000","Message":"Muraho"}'
    assert crypto.decrypt_text(crypto.encrypt_text(text, KEY, IV), KEY, IV) == text


def test_wrong_key_is_an_envelope_error():
    blob = crypto.encrypt_text("hello world", KEY, IV)
    with pytest.raises(EnvelopeError):
        crypto.decrypt_text(blob, "x" * 64, IV)


def test_garbage_is_an_envelope_error():
    with pytest.raises(EnvelopeError):
        crypto.decrypt_text("not base64!!", KEY, IV)


def test_iv_must_be_sixteen_bytes():
    with pytest.raises(EnvelopeError):
        crypto.encrypt_text("x", KEY, "short")


def test_key_derivation_uses_hex_prefix_of_sha256():
    derived = crypto._derive_key("secret")
    assert len(derived) == 32
    assert derived.decode() == "2bb80d537b1da3e38bd30361aa855686"


def test_generated_material_shapes():
    k, i, t = crypto.random_key(), crypto.random_iv(), crypto.transaction_id()
    assert len(k) == 64 and k.isalnum()
    assert len(i) == 16 and all(c in crypto.IV_ALPHABET for c in i)
    assert len(t) == 8 and t == t.upper()
    assert crypto.random_key() != k


def test_wrap_pin_is_stable_and_not_clear():
    assert crypto.wrap_pin("1234") == crypto.wrap_pin("1234")
    assert crypto.wrap_pin("1234") != "1234"
    assert crypto.wrap_pin("1234") != crypto.wrap_pin("4321")


def test_seal_uses_fresh_key_and_iv_per_call():
    a = crypto.seal({"FORMID": "X"})
    b = crypto.seal({"FORMID": "X"})
    assert (a.k, a.i) != (b.k, b.i)
    assert json.loads(crypto.decrypt_text(a.r, a.k, a.i)) == {"FORMID": "X"}
    assert set(a.as_body()) == {"k", "i", "r"}


def test_open_reply_plain_json():
    body = crypto.encrypt_text('{"Status":"000"}', KEY, IV)
    assert crypto.open_reply(body, KEY, IV) == {"Status": "000"}


def test_open_reply_unwraps_inner_base64():
    inner = base64.b64encode(b'{"Status":"091"}').decode()
    assert inner.startswith("eyJ")
    body = crypto.encrypt_text(inner, KEY, IV)
    assert crypto.open_reply(body, KEY, IV) == {"Status": "091"}


def test_open_reply_rejects_non_json():
    body = crypto.encrypt_text("<html>oops</html>", KEY, IV)
    with pytest.raises(EnvelopeError):
        crypto.open_reply(body, KEY, IV)
