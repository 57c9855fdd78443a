import hashlib

import pytest

from ceremony.entropy import EntropyDeriver, SecretMode, derive_secret, entropy_bytes
from ceremony.errors import InvalidEntropy

ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_sha256_known_vector():
    assert derive_secret("abc") == ABC_SHA256


def test_prefixed_secret():
    assert derive_secret("abc", prefixed=True) == "0x" + ABC_SHA256


def test_str_is_hashed_as_utf8():
    value = "entropie ✓ é"
    assert derive_secret(value) == hashlib.sha256(value.encode("utf-8")).hexdigest()


def test_bytes_and_str_agree():
    assert derive_secret(b"abc") == derive_secret("abc")
    assert derive_secret(bytearray(b"abc")) == derive_secret("abc")
    assert derive_secret(memoryview(b"abc")) == derive_secret("abc")


def test_output_is_lowercase_hex_without_separators():
    s = derive_secret("seed-1")
    assert len(s) == 64
    assert s == s.lower()
    int(s, 16)


@pytest.mark.parametrize("bad", [None, 42, 1.5, {"a": 1}, {"a"}, "\ud800"])
def test_unencodable_values_are_rejected(bad):
    with pytest.raises(InvalidEntropy):
        entropy_bytes(bad)


def test_single_value_yields_one_unprefixed_secret():
    secrets = EntropyDeriver().derive("abc")
    assert secrets.mode is SecretMode.SINGLE
    assert secrets.values == (ABC_SHA256,)
    assert secrets.for_engine() == ABC_SHA256


def test_four_values_yield_four_prefixed_secrets_in_order():
    entropy = ["a", "b", "c", "d"]
    secrets = EntropyDeriver().derive(entropy)
    assert secrets.mode is SecretMode.MULTI
    assert len(secrets) == 4
    assert secrets.values == tuple("0x" + hashlib.sha256(v.encode()).hexdigest() for v in entropy)
    assert secrets.for_engine() == secrets.values


def test_tuple_entropy_is_a_collection():
    assert EntropyDeriver().derive(("a", "b", "c", "d")).mode is SecretMode.MULTI


@pytest.mark.parametrize("entropy", [[], ["a"], ["a", "b", "c"], ["a", "b", "c", "d", "e"]])
def test_wrong_slot_count_is_rejected(entropy):
    with pytest.raises(InvalidEntropy) as ei:
        EntropyDeriver(4).derive(entropy)
    assert "slot-count" in ei.value.reason


def test_bad_slot_rejects_whole_collection():
    with pytest.raises(InvalidEntropy):
        EntropyDeriver().derive(["a", None, "c", "d"])


def test_custom_slot_count():
    secrets = EntropyDeriver(slots=2).derive(["x", "y"])
    assert len(secrets) == 2


def test_slot_count_must_allow_a_collection():
    with pytest.raises(ValueError):
        EntropyDeriver(slots=1)


def test_derivation_is_idempotent_and_stateless():
    deriver = EntropyDeriver()
    first = deriver.derive(["a", "b", "c", "d"])
    second = deriver.derive(["a", "b", "c", "d"])
    assert first == second
    assert deriver.slots == 4
    assert deriver.derive("seed") == deriver.derive("seed")


def test_secret_values_never_show_in_repr():
    secrets = EntropyDeriver().derive("abc")
    assert ABC_SHA256 not in repr(secrets)
