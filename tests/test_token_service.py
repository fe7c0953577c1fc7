"""Tests for token issuing, validation and cleanup."""
from datetime import timedelta

import pytest

from database import utcnow
from enums import TokenType
from errors import UnauthenticatedError
from services.token_service import TokenService


def test_issue_token_stores_one_record(db, token_service, customer):
    credential = token_service.issue_token(customer["_id"])

    assert isinstance(credential, str)
    records = list(db["tokens"].find({"userId": customer["_id"]}))
    assert len(records) == 1
    assert records[0]["type"] == "auth"
    assert records[0]["isValid"] is True


def test_issue_token_reuses_valid_record(db, token_service, customer):
    first = token_service.issue_token(customer["_id"])
    second = token_service.issue_token(customer["_id"])

    assert db["tokens"].count_documents({"userId": customer["_id"]}) == 1
    assert token_service.validate_token(first)["_id"] == token_service.validate_token(second)["_id"]


def test_issue_token_replaces_invalidated_record(db, token_service, customer):
    first = token_service.issue_token(customer["_id"])
    token_service.invalidate_token(first)

    second = token_service.issue_token(customer["_id"])

    assert db["tokens"].count_documents({"userId": customer["_id"]}) == 1
    with pytest.raises(UnauthenticatedError):
        token_service.validate_token(first)
    assert token_service.validate_token(second)["isValid"] is True


def test_validate_token_stamps_last_used(db, token_service, customer):
    credential = token_service.issue_token(customer["_id"])

    record = token_service.validate_token(credential)

    assert record["userId"] == customer["_id"]
    assert db["tokens"].find_one({"_id": record["_id"]})["lastUsedAt"] is not None
    assert token_service.cached_count() == 1


def test_validate_token_rejects_wrong_type(token_service, customer):
    credential = token_service.issue_token(customer["_id"], TokenType.RESET_PASSWORD)

    with pytest.raises(UnauthenticatedError):
        token_service.validate_token(credential, TokenType.AUTH)
    assert token_service.validate_token(credential, TokenType.RESET_PASSWORD)["type"] == "resetPassword"


def test_validate_token_rejects_garbage(token_service):
    with pytest.raises(UnauthenticatedError):
        token_service.validate_token("not-a-jwt")


def test_validate_token_rejects_foreign_signature(db, token_service, customer):
    forger = TokenService(db, secret_key="another-key")
    credential = forger.issue_token(customer["_id"])

    with pytest.raises(UnauthenticatedError):
        token_service.validate_token(credential)


def test_validate_token_rejects_expired_record(db, customer):
    now = utcnow()
    issuer = TokenService(db, secret_key="k")
    credential = issuer.issue_token(customer["_id"])

    later = TokenService(db, secret_key="k", clock=lambda: now + timedelta(hours=25))
    with pytest.raises(UnauthenticatedError):
        later.validate_token(credential)


def test_invalidate_token_drops_cached_entry(token_service, customer):
    credential = token_service.issue_token(customer["_id"])
    token_service.validate_token(credential)

    assert token_service.invalidate_token(credential) == 1
    assert token_service.cached_count() == 0
    with pytest.raises(UnauthenticatedError):
        token_service.validate_token(credential)


def test_invalidate_user_tokens_keeps_excepted(db, token_service, customer):
    auth = token_service.issue_token(customer["_id"])
    reset = token_service.issue_token(customer["_id"], TokenType.RESET_PASSWORD)
    keep = token_service.validate_token(reset, TokenType.RESET_PASSWORD)

    assert token_service.invalidate_user_tokens(customer["_id"], except_token_id=keep["_id"]) == 1
    with pytest.raises(UnauthenticatedError):
        token_service.validate_token(auth)
    assert token_service.validate_token(reset, TokenType.RESET_PASSWORD)["_id"] == keep["_id"]


def test_cleanup_removes_expired_and_invalid_records(db, token_service, customer, make_user):
    now = utcnow()
    other = make_user()
    token_service.issue_token(customer["_id"])
    db["tokens"].insert_many(
        [
            {"userId": other["_id"], "type": "auth", "token": "expired", "isValid": True,
             "expiresAt": now - timedelta(hours=1)},
            {"userId": other["_id"], "type": "resetPassword", "token": "revoked", "isValid": False,
             "expiresAt": now + timedelta(hours=1)},
        ]
    )

    assert token_service.cleanup() == 2
    assert db["tokens"].count_documents({}) == 1


def test_cleanup_is_idempotent(db, token_service, customer):
    credential = token_service.issue_token(customer["_id"])
    token_service.invalidate_token(credential)

    token_service.cleanup()
    remaining = db["tokens"].count_documents({})

    assert token_service.cleanup() == 0
    assert db["tokens"].count_documents({}) == remaining
