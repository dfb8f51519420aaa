"""Request-scoped caller identity.

Tokens are issued elsewhere; this module only maps a bearer token to the
user it belongs to.
"""

import hashlib
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from bookstore.database import get_db
from bookstore.models import User
from bookstore.store import EntityStore


@dataclass(frozen=True)
class RequestContext:
    user_id: Optional[int] = None
    username: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = RequestContext()


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def resolve_context(store: EntityStore, authorization: Optional[str]) -> RequestContext:
    if not authorization:
        return ANONYMOUS
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return ANONYMOUS
    users = store.find_many(
        User, filters=[User.api_token_hash == hash_token(token.strip())], limit=1
    )
    if not users:
        return ANONYMOUS
    return RequestContext(user_id=users[0].id, username=users[0].username)


def get_request_context(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> RequestContext:
    return resolve_context(EntityStore(db), authorization)
