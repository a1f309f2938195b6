# tests/test_security.py
from heyauto.utils.security import hash_password, verify_password


def test_password_hash_is_bcrypt():
    hashed = hash_password("secret123")
    assert hashed.startswith("$2")
    assert "secret123" not in hashed
    # соль случайная
    assert hash_password("secret123") != hashed


def test_verify_password():
    hashed = hash_password("secret123")
    assert verify_password("secret123", hashed)
    assert not verify_password("secret124", hashed)
    assert not verify_password("", hashed)


def test_verify_against_garbage_hash():
    assert not verify_password("secret123", "")
    assert not verify_password("secret123", "pbkdf2_sha256$1$salt$abcd")


def test_long_password_is_accepted():
    long_password = "к" * 100  # 200 байт в utf-8
    hashed = hash_password(long_password)
    assert verify_password(long_password, hashed)
