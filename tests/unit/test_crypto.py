"""Tests for credential encryption and signature helpers."""

import base64
import hashlib
import hmac

import pytest

from moodboard.crypto import (
    DecryptionError,
    decrypt_string,
    encrypt_string,
    generate_token,
    verify_shopify_hmac,
)


def test_encrypt_round_trip_uses_fresh_iv():
    first = encrypt_string("shpat_secret")
    second = encrypt_string("shpat_secret")
    assert first != second
    assert decrypt_string(first) == "shpat_secret"


def test_layout_is_iv_tag_ciphertext():
    raw = base64.b64decode(encrypt_string("abc"))
    assert len(raw) == 12 + 16 + 3


def test_wrong_key_fails():
    token = encrypt_string("value", secret="one")
    with pytest.raises(DecryptionError):
        decrypt_string(token, secret="two")


def test_tampered_ciphertext_fails():
    raw = bytearray(base64.b64decode(encrypt_string("value")))
    raw[-1] ^= 0x01
    with pytest.raises(DecryptionError):
        decrypt_string(base64.b64encode(bytes(raw)).decode())


@pytest.mark.parametrize("token", ["%%%not-base64", base64.b64encode(b"short").decode()])
def test_malformed_ciphertext(token):
    with pytest.raises(DecryptionError):
        decrypt_string(token)


def test_generate_token_is_url_safe():
    token = generate_token(24)
    assert len(token) == 32
    assert all(c.isalnum() or c in "-_" for c in token)


def sign(params: dict, secret: str) -> str:
    message = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def test_shopify_hmac():
    params = {"code": "abc", "shop": "demo.myshopify.com", "state": "xyz", "timestamp": "1700000000"}
    signed = {**params, "hmac": sign(params, "shh")}
    assert verify_shopify_hmac(signed, "shh")
    assert not verify_shopify_hmac(signed, "other")
    assert not verify_shopify_hmac({**signed, "code": "changed"}, "shh")
    assert not verify_shopify_hmac(params, "shh")
    assert not verify_shopify_hmac(signed, "")
