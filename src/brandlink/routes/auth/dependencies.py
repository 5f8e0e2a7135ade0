"""
# Authentication Dependencies

FastAPI dependencies that turn a bearer token into the calling principal.

`get_current_principal` enforces, in order:

1.  **Signature and expiry**: the JWT must verify with `SECRET_KEY`.
2.  **Revocation**: blacklisted tokens are rejected.
3.  **Session state**: the `sid` session must exist, be active and unexpired.
4.  **Account state**: the account must still exist.

The returned principal is the public account document plus `principal_type` and
`session_id`. Every accepted request refreshes the session's `last_activity`.

```python
@router.get("/me")
async def me(principal: dict = Depends(get_current_principal)):
    return principal

@router.put("/brand/profile")
async def update(principal: dict = Depends(require_principal_type(UserType.BUSINESS))):
    ...
```
"""

from typing import Any, Callable, Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from brandlink.managers.logging_manager import get_logger
from brandlink.models.security_models import UserType
from brandlink.services.auth_service import auth_service, decode_access_token
from brandlink.services.security_service import security_service
from brandlink.utils.errors import AuthenticationError, NotFoundError

logger = get_logger(prefix="[Security Dependencies]")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/user/login")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(token: str = Depends(oauth2_scheme)) -> Dict[str, Any]:
    """
    Resolve the authenticated principal for the request.

    Raises:
        HTTPException(401): Invalid, expired or revoked token, dead session, or missing account.
    """
    try:
        payload = decode_access_token(token)
    except AuthenticationError as e:
        raise _unauthorized(e.message) from e

    if await security_service.is_token_blacklisted(token):
        logger.warning("Rejected blacklisted token for %s", payload.get("sub"))
        raise _unauthorized("Token has been revoked")

    session_id = payload.get("sid")
    if not session_id or not await security_service.is_session_valid(session_id):
        logger.info("Rejected token with inactive session %s for %s", session_id, payload.get("sub"))
        raise _unauthorized("Session has expired or was revoked")

    try:
        principal = await auth_service.get_principal(payload["type"], payload["sub"])
    except NotFoundError as e:
        raise _unauthorized("Account no longer exists") from e

    await security_service.update_session_activity(session_id)

    principal["principal_type"] = payload["type"]
    principal["session_id"] = session_id
    return principal


def require_principal_type(*allowed: UserType) -> Callable:
    """Dependency factory restricting an endpoint to the given principal kinds."""
    allowed_values = {UserType(a).value for a in allowed}

    async def dependency(principal: Dict[str, Any] = Depends(get_current_principal)) -> Dict[str, Any]:
        if principal["principal_type"] not in allowed_values:
            logger.info(
                "Denied %s %s access to %s-only endpoint",
                principal["principal_type"],
                principal.get("id"),
                "/".join(sorted(allowed_values)),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This endpoint is only available to {', '.join(sorted(allowed_values))} accounts",
            )
        return principal

    return dependency


require_business = require_principal_type(UserType.BUSINESS)
require_manufacturer = require_principal_type(UserType.MANUFACTURER)
require_user = require_principal_type(UserType.USER)
