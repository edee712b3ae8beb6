"""
Unit tests for the credential hasher.
"""
import threading

import pytest
from passlib.hash import pbkdf2_sha256

from identity_platform.identity_platform.auth_service.exceptions import EmptyPassword
from identity_platform.identity_platform.auth_service.hashing import CredentialHash, CredentialHasher


def test_hash_then_verify(hasher):
    credential = hasher.hash("pw123")
    assert hasher.verify("pw123", credential)
    assert hasher.verify("pw123", credential.encoded)


def test_verify_rejects_other_password(hasher):
    credential = hasher.hash("correct horse")
    assert not hasher.verify("battery staple", credential)
    assert not hasher.verify("correct horse ", credential)


def test_hash_uses_fresh_salt_each_call(hasher):
    first = hasher.hash("pw123")
    second = hasher.hash("pw123")

    assert first.encoded != second.encoded
    assert first.salt != second.salt
    assert hasher.verify("pw123", first)
    assert hasher.verify("pw123", second)


def test_hash_is_self_describing(hasher):
    credential = hasher.hash("pw123")

    assert isinstance(credential, CredentialHash)
    assert credential.algorithm == "scrypt"
    assert credential.cost == 4
    assert credential.encoded.startswith("$scrypt$")
    assert credential.salt and credential.digest
    assert hasher.describe(credential.encoded) == credential


def test_repr_does_not_expose_digest(hasher):
    credential = hasher.hash("pw123")
    assert credential.encoded not in repr(credential)


def test_hash_rejects_empty_password(hasher):
    with pytest.raises(EmptyPassword):
        hasher.hash("")


@pytest.mark.parametrize("stored", [
    "",
    "not-a-hash",
    "$scrypt$garbage",
    "$scrypt$ln=4,r=8,p=1$$",
    "$unknown$1$abc$def",
])
def test_verify_returns_false_for_malformed_hash(hasher, stored):
    assert hasher.verify("pw123", stored) is False


def test_verify_returns_false_for_empty_plaintext(hasher):
    assert hasher.verify("", hasher.hash("pw123")) is False


def test_describe_rejects_malformed_hash(hasher):
    with pytest.raises(ValueError):
        hasher.describe("not-a-hash")


def test_legacy_pbkdf2_hash_verifies_and_is_upgraded(hasher):
    legacy = pbkdf2_sha256.using(rounds=1000).hash("pw123")

    assert hasher.verify("pw123", legacy)
    assert hasher.needs_rehash(legacy)

    matched, replacement = hasher.verify_and_update("pw123", legacy)
    assert matched
    assert replacement is not None
    assert replacement.algorithm == "scrypt"
    assert hasher.verify("pw123", replacement)


def test_wrong_password_never_yields_replacement(hasher):
    legacy = pbkdf2_sha256.using(rounds=1000).hash("pw123")
    assert hasher.verify_and_update("wrong", legacy) == (False, None)


def test_raised_cost_marks_old_hashes_for_rehash(hasher):
    old = hasher.hash("pw123")
    stronger = CredentialHasher(rounds=5, max_concurrency=1)

    assert not hasher.needs_rehash(old)
    assert stronger.needs_rehash(old)
    # Old hashes keep verifying after the cost is raised
    assert stronger.verify("pw123", old)


def test_current_hash_is_not_replaced(hasher):
    credential = hasher.hash("pw123")
    assert hasher.verify_and_update("pw123", credential) == (True, None)


def test_dummy_verify_runs(hasher):
    assert hasher.dummy_verify() is None


def test_max_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        CredentialHasher(rounds=4, max_concurrency=0)


def test_concurrent_verification(hasher):
    credential = hasher.hash("pw123")
    results = []

    def worker(candidate):
        results.append((candidate, hasher.verify(candidate, credential)))

    threads = [threading.Thread(target=worker, args=(p,)) for p in ["pw123", "nope"] * 4]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 8
    assert all(ok == (candidate == "pw123") for candidate, ok in results)
