"""
Issues, validates and revokes authentication, password-reset and
email-verification tokens.

A stored record holds an opaque reference (UUID). Clients receive a signed JWT
that carries the reference; refreshing a still-valid record signs a new JWT for
the same reference, so several signed credentials may validate against one
record until it is invalidated or expires.
"""
import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from jose import JWTError, jwt
from pymongo.database import Database

import config
from database import to_object_id, utcnow
from enums import TokenType
from errors import UnauthenticatedError

logger = logging.getLogger(__name__)

EXPIRATION_TIMES = {
    TokenType.AUTH: timedelta(hours=24),
    TokenType.RESET_PASSWORD: timedelta(hours=1),
    TokenType.EMAIL_VERIFICATION: timedelta(hours=24),
}
CACHE_TTL = timedelta(minutes=5)


class TokenService:
    def __init__(
        self,
        db: Database,
        secret_key: str = config.SECRET_KEY,
        algorithm: str = config.ALGORITHM,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.tokens = db["tokens"]
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.clock = clock
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def sign(self, user_id: ObjectId, token_type: TokenType, reference: str, expires_at: datetime) -> str:
        claims = {
            "userId": str(user_id),
            "type": token_type.value,
            "ref": reference,
            "iat": self.clock(),
            "exp": expires_at,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def decode(self, credential: str) -> Dict[str, Any]:
        try:
            return jwt.decode(credential, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning(f"JWT verification failed: {e}")
            raise UnauthenticatedError("Invalid or expired token")

    def issue_token(self, user_id, token_type=TokenType.AUTH, device: Optional[Dict[str, Any]] = None) -> str:
        user_id = to_object_id(user_id, "userId")
        token_type = TokenType(token_type)
        now = self.clock()

        self.tokens.delete_many({"userId": user_id, "type": token_type.value, "expiresAt": {"$lt": now}})

        existing = self.tokens.find_one(
            {"userId": user_id, "type": token_type.value, "isValid": True, "expiresAt": {"$gt": now}}
        )
        if existing:
            return self.sign(user_id, token_type, existing["token"], existing["expiresAt"])

        record = self._create_record(user_id, token_type, device, now)
        return self.sign(user_id, token_type, record["token"], record["expiresAt"])

    def _create_record(self, user_id: ObjectId, token_type: TokenType, device, now: datetime) -> Dict[str, Any]:
        try:
            self.tokens.delete_many({"userId": user_id, "type": token_type.value})
            record = {
                "userId": user_id,
                "type": token_type.value,
                "token": str(uuid.uuid4()),
                "expiresAt": now + EXPIRATION_TIMES[token_type],
                "isValid": True,
                "device": device or {},
                "createdAt": now,
                "updatedAt": now,
            }
            record["_id"] = self.tokens.insert_one(record).inserted_id
            logger.info(f"Issued {token_type.value} token for user {user_id}")
            return record
        except Exception as e:
            logger.error(f"Error saving reference token: {e}")
            raise

    def validate_token(self, credential: str, token_type=TokenType.AUTH) -> Dict[str, Any]:
        token_type = TokenType(token_type)
        claims = self.decode(credential)
        if claims.get("type") != token_type.value:
            raise UnauthenticatedError("Invalid or expired token")

        now = self.clock()
        with self._lock:
            cached = self._cache.get(credential)
        if cached and now - cached["timestamp"] < CACHE_TTL and now < cached["expiresAt"]:
            return cached["record"]

        try:
            user_id = ObjectId(claims.get("userId"))
        except (InvalidId, TypeError):
            raise UnauthenticatedError("Invalid or expired token")

        record = self.tokens.find_one(
            {
                "userId": user_id,
                "type": token_type.value,
                "token": claims.get("ref"),
                "isValid": True,
                "expiresAt": {"$gt": now},
            }
        )
        if not record:
            raise UnauthenticatedError("Invalid or expired token")

        self.tokens.update_one({"_id": record["_id"]}, {"$set": {"lastUsedAt": now}})
        with self._lock:
            self._cache[credential] = {
                "record": record,
                "userId": record["userId"],
                "tokenId": record["_id"],
                "expiresAt": record["expiresAt"],
                "timestamp": now,
            }
        return record

    def invalidate_token(self, credential: str) -> int:
        claims = self.decode(credential)
        try:
            user_id = ObjectId(claims.get("userId"))
        except (InvalidId, TypeError):
            raise UnauthenticatedError("Invalid or expired token")

        query = {"userId": user_id, "type": claims.get("type"), "token": claims.get("ref")}
        with self._lock:
            stale = [
                k for k, v in self._cache.items()
                if v["userId"] == user_id and v["record"]["token"] == query["token"]
            ]
            for key in stale:
                del self._cache[key]
        result = self.tokens.update_many(query, {"$set": {"isValid": False}})
        logger.info(f"Invalidated {result.modified_count} token(s) for user {user_id}")
        return result.modified_count

    def invalidate_user_tokens(self, user_id, except_token_id=None) -> int:
        user_id = to_object_id(user_id, "userId")
        with self._lock:
            for key in [
                k for k, v in self._cache.items()
                if v["userId"] == user_id and (except_token_id is None or v["tokenId"] != except_token_id)
            ]:
                del self._cache[key]

        query: Dict[str, Any] = {"userId": user_id, "isValid": True}
        if except_token_id is not None:
            query["_id"] = {"$ne": except_token_id}
        result = self.tokens.update_many(query, {"$set": {"isValid": False}})
        logger.info(f"Invalidated {result.modified_count} token(s) for user {user_id}")
        return result.modified_count

    def cleanup(self) -> int:
        now = self.clock()
        with self._lock:
            stale = [
                k for k, v in self._cache.items()
                if now >= v["expiresAt"] or now - v["timestamp"] >= CACHE_TTL
            ]
            for key in stale:
                del self._cache[key]

        result = self.tokens.delete_many({"$or": [{"expiresAt": {"$lt": now}}, {"isValid": False}]})
        logger.info(f"Token cleanup removed {result.deleted_count} record(s), {len(stale)} cache entr(ies)")
        return result.deleted_count

    def cached_count(self) -> int:
        with self._lock:
            return len(self._cache)
