import pytest

from teamnetwork.payments.fingerprint import (
    canonicalize,
    hash_fingerprint,
    normalize_currency,
    normalize_text,
)


def test_same_fields_same_digest_regardless_of_order():
    a = hash_fingerprint({"orgId": "o1", "amountCents": 2500, "currency": "usd"})
    b = hash_fingerprint({"currency": "usd", "amountCents": 2500, "orgId": "o1"})
    assert a == b
    assert len(a) == 64
    int(a, 16)


def test_any_field_change_changes_digest():
    base = {"orgId": "o1", "amountCents": 2500, "currency": "usd", "purpose": "books"}
    digest = hash_fingerprint(base)
    assert hash_fingerprint({**base, "amountCents": 5000}) != digest
    assert hash_fingerprint({**base, "purpose": "travel"}) != digest
    assert hash_fingerprint({**base, "extra": None}) != digest


def test_type_tags_distinguish_string_and_number():
    assert hash_fingerprint({"v": "123"}) != hash_fingerprint({"v": 123})
    assert hash_fingerprint({"v": 1}) != hash_fingerprint({"v": True})
    assert hash_fingerprint({"v": 1}) != hash_fingerprint({"v": 1.0})


def test_strings_trimmed_and_blank_is_null():
    assert hash_fingerprint({"name": "  Dana "}) == hash_fingerprint({"name": "Dana"})
    assert hash_fingerprint({"name": "   "}) == hash_fingerprint({"name": None})
    assert hash_fingerprint({"name": ""}) == hash_fingerprint({"name": None})


def test_nested_values_are_canonical():
    a = hash_fingerprint({"meta": {"b": 1, "a": [1, "x"]}})
    b = hash_fingerprint({"meta": {"a": [1, "x"], "b": 1}})
    assert a == b
    assert canonicalize({"k": None}) == '["map",[["k",["null"]]]]'


def test_unsupported_types_rejected():
    with pytest.raises(TypeError):
        hash_fingerprint({"v": object()})
    with pytest.raises(ValueError):
        hash_fingerprint({"v": float("nan")})


def test_normalize_currency():
    assert normalize_currency(" USD ") == "usd"
    assert normalize_currency(None) == "usd"
    assert normalize_currency("") == "usd"
    assert normalize_currency("eur") == "eur"
    with pytest.raises(ValueError):
        normalize_currency("dollars")
    with pytest.raises(ValueError):
        normalize_currency("u5d")


def test_normalize_text():
    assert normalize_text(None) is None
    assert normalize_text("  ") is None
    assert normalize_text(" hi ") == "hi"
