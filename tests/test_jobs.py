import asyncio
from datetime import datetime

from jobs import run_token_cleanup, seconds_until_next_hour


class ExplodingTokenService:
    def cleanup(self):
        raise RuntimeError("database unavailable")


def test_seconds_until_next_hour():
    assert seconds_until_next_hour(datetime(2030, 5, 1, 9, 59, 30)) == 30
    assert seconds_until_next_hour(datetime(2030, 5, 1, 9, 0, 0)) == 3600


def test_run_token_cleanup(db, token_service, customer):
    credential = token_service.issue_token(customer["_id"])
    token_service.invalidate_token(credential)

    assert asyncio.run(run_token_cleanup(token_service)) == 1
    assert db["tokens"].count_documents({}) == 0


def test_run_token_cleanup_survives_errors():
    assert asyncio.run(run_token_cleanup(ExplodingTokenService())) == 0
