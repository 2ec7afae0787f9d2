from core.security import (
    codes_match,
    generate_numeric_code,
    generate_opaque_token,
    get_password_hash,
    verify_password,
)
from services.geolocation import Geolocator, is_public_ip


def test_numeric_code_is_six_digits():
    codes = {generate_numeric_code() for _ in range(50)}
    assert all(len(code) == 6 and code.isdigit() for code in codes)
    assert len(codes) > 1


def test_password_hash_roundtrip():
    hashed = get_password_hash("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_without_hash_fails():
    assert not verify_password("anything", None)


def test_codes_match_ignores_surrounding_whitespace():
    assert codes_match("123456", " 123456\n")
    assert not codes_match("123456", "123457")


def test_opaque_tokens_are_unique_hex():
    first, second = generate_opaque_token(), generate_opaque_token()
    assert first != second
    int(first, 16)


def test_is_public_ip():
    assert is_public_ip("8.8.8.8")
    assert not is_public_ip("127.0.0.1")
    assert not is_public_ip("::1")
    assert not is_public_ip("192.168.1.10")
    assert not is_public_ip("Unknown")
    assert not is_public_ip(None)


async def test_geolocation_skips_loopback_without_request():
    result = await Geolocator(token="unused").lookup("127.0.0.1")
    assert result.ok
    assert result.value is None
