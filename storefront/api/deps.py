# storefront/api/deps.py
import uuid

from fastapi import Depends, HTTPException, Request, Response, Security, status
from fastapi.security import OAuth2PasswordBearer, SecurityScopes
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.security import decode_access_token
from storefront.db.session_async import get_async_db
from storefront.models.user import User
from storefront.schemas.user import TokenPayload
from storefront.services.cart_service import CartIdentity


OAUTH_SCOPES = {
    "admin": "Full administrative access.",
    "users:me": "Access to the caller's own profile, addresses and points.",
    "orders:read": "Read sales orders.",
    "orders:write": "Change order status.",
    "coupons:read": "Read coupons and their usage.",
    "coupons:write": "Create, update and delete coupons.",
}

# Tokens are issued by the auth service; this API only verifies them.
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    scopes=OAUTH_SCOPES,
)

oauth2_scheme_optional = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    scopes=OAUTH_SCOPES,
    auto_error=False,
)

_MAX_GUEST_TOKEN_LENGTH = 120


def _decode_token(token: str) -> tuple[TokenPayload, list[str]]:
    payload = decode_access_token(token)
    token_data = TokenPayload(**payload)
    token_scopes: list[str] = payload.get("scopes", []) or []
    return token_data, token_scopes


async def _get_user_by_id(db: AsyncSession, user_id: str | None) -> User | None:
    if not user_id:
        return None
    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        return None
    result = await db.execute(select(User).where(User.id == user_uuid))
    return result.scalar_one_or_none()


async def get_current_user(
    security_scopes: SecurityScopes,
    db: AsyncSession = Depends(get_async_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    cred_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": f'Bearer scope="{security_scopes.scope_str}"'},
    )

    try:
        token_data, token_scopes = _decode_token(token)
    except JWTError:
        raise cred_exc

    if token_data.sub is None:
        raise cred_exc

    user = await _get_user_by_id(db, token_data.sub)
    if user is None:
        raise cred_exc
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")

    if security_scopes.scopes and "admin" not in token_scopes:
        for scope in security_scopes.scopes:
            if scope not in token_scopes:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Not enough permissions",
                    headers={"WWW-Authenticate": f'Bearer scope="{security_scopes.scope_str}"'},
                )
    return user


async def get_optional_user(
    db: AsyncSession = Depends(get_async_db),
    token: str | None = Depends(oauth2_scheme_optional),
) -> User | None:
    if not token:
        return None

    try:
        token_data, _ = _decode_token(token)
    except JWTError:
        return None

    user = await _get_user_by_id(db, token_data.sub)
    if user is None or not user.is_active:
        return None
    return user


def get_current_active_user(
    current_user: User = Security(get_current_user, scopes=["users:me"])
) -> User:
    return current_user


async def get_cart_identity(
    request: Request,
    response: Response,
    current_user: User | None = Depends(get_optional_user),
) -> CartIdentity:
    """Signed-in users own their cart; everyone else is tracked by a guest token.

    The guest token is read from the request header (or minted) and echoed back
    in the response header so the client can keep sending it.
    """
    if current_user:
        return CartIdentity(user_id=current_user.id)

    header = settings.GUEST_TOKEN_HEADER
    token = (request.headers.get(header) or "").strip()
    if not token or len(token) > _MAX_GUEST_TOKEN_LENGTH:
        token = str(uuid.uuid4())
    response.headers[header] = token
    return CartIdentity(guest_token=token)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"
