from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from blog_backend.context import GUEST, RequestContext
from blog_backend.credentials import CredentialStore
from blog_backend.notifications import NotificationDispatcher
from blog_backend.security import CLAIM_USERNAME, decode_token

_bearer = HTTPBearer(auto_error=False)


async def get_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> RequestContext:
    """
    Build the per-request identity from an optional bearer token.

    No token means a guest.  A token that fails verification is rejected
    outright rather than silently downgraded to a guest.
    """
    if credentials is None:
        return GUEST
    try:
        claims = decode_token(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid session token")
    username = claims.get(CLAIM_USERNAME)
    if not isinstance(username, str) or not username:
        raise HTTPException(status_code=401, detail="Invalid session token")
    return RequestContext(username=username)


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def unsuccessful() -> HTTPException:
    """
    The single response for every failed operation.

    Forbidden, not found and invalid input all look the same to clients.
    """
    return HTTPException(status_code=400, detail="Operation did not succeed")
