import pytest
from cryptography.fernet import Fernet

from utils.encryption import EncryptionError, EncryptionService


@pytest.fixture()
def service():
    return EncryptionService(secret="unit-test-secret")


def test_encrypt_decrypt_structured_data(service):
    token = service.encrypt_data({"report": "abc", "points": 50})
    assert "abc" not in token
    assert service.decrypt_data(token) == {"report": "abc", "points": 50}


def test_decrypt_with_other_key_fails(service):
    token = service.encrypt_data("secret")
    with pytest.raises(EncryptionError):
        EncryptionService(secret="another-secret").decrypt_data(token)


def test_decrypt_garbage_fails(service):
    with pytest.raises(EncryptionError):
        service.decrypt_data("not-a-token")


def test_explicit_fernet_key():
    key = Fernet.generate_key().decode()
    assert EncryptionService(key=key).decrypt_data(EncryptionService(key=key).encrypt_data([1, 2])) == [1, 2]


def test_invalid_key_and_missing_secret():
    with pytest.raises(EncryptionError):
        EncryptionService(key="too-short")
    with pytest.raises(EncryptionError):
        EncryptionService()


def test_hash_and_integrity(service):
    assert service.hash_data("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    digest = service.hash_data('{"a":1,"b":2}')
    assert service.validate_data_integrity({"b": 2, "a": 1}, digest) is True
    assert service.validate_data_integrity({"a": 1}, digest) is False


def test_secure_id_shape(service):
    first, second = service.generate_secure_id(), service.generate_secure_id()
    assert len(first) == 16
    assert first != second
    int(first, 16)


def test_secure_token_lifecycle(service):
    token = service.create_secure_token("redemption-1", expiration_hours=1, now=1_000_000)
    assert service.validate_secure_token(token, now=1_000_000 + 3599) == {"valid": True, "subject": "redemption-1"}
    assert service.validate_secure_token(token, now=1_000_000 + 3601) == {"valid": False, "expired": True}
    assert service.validate_secure_token("bogus") == {"valid": False}
