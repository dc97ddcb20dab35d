import time

from csrf import generate_csrf_token, new_session_nonce, validate_csrf_token


def test_token_is_bound_to_session_nonce() -> None:
    nonce = new_session_nonce()
    token = generate_csrf_token(nonce)

    assert validate_csrf_token(token, nonce)
    assert not validate_csrf_token(token, new_session_nonce())


def test_tampered_or_missing_token_is_rejected() -> None:
    nonce = new_session_nonce()
    token = generate_csrf_token(nonce)

    assert not validate_csrf_token(token[:-2] + "xx", nonce)
    assert not validate_csrf_token("", nonce)


def test_expired_token_is_rejected(monkeypatch) -> None:
    nonce = new_session_nonce()
    token = generate_csrf_token(nonce, max_age_hours=1)

    later = time.time() + 2 * 3600
    monkeypatch.setattr("csrf.time.time", lambda: later)

    assert not validate_csrf_token(token, nonce)
