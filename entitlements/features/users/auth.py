"""
Identity provider integration: Appwrite-issued JWTs identify the actor of
every entitlement and permission request.

The local decode only rejects malformed and expired tokens early. A token is
accepted once Appwrite itself returns the account the JWT belongs to.
"""
import asyncio
from fastapi import HTTPException, status
from appwrite.client import Client
from appwrite.services.account import Account
from appwrite.exception import AppwriteException
import jwt

from entitlements.core import config
from entitlements.utils import get_logger


log = get_logger(__name__)


def jwt_client(token: str) -> Client:
    """Appwrite client acting as the holder of `token`."""
    client = Client()
    client.set_endpoint(config.APPWRITE_ENDPOINT)
    client.set_project(config.APPWRITE_PROJECT_ID)
    client.set_jwt(token)
    return client


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt_token(token: str) -> dict:
    """
    Decode an Appwrite JWT and return its payload.

    The signature is not checked here; verify_appwrite_account does that by
    asking Appwrite. Expiry is enforced so stale tokens never leave the process.

    Raises:
        HTTPException: 401 if the token is malformed or expired
    """
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": True})
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        log.info("Rejected bearer token: %s", e)
        raise _unauthorized("Invalid token")


def appwrite_user_id(token: str) -> str:
    """Appwrite user id claimed by a bearer token."""
    user_id = verify_jwt_token(token).get("userId")
    if not user_id:
        raise _unauthorized("Invalid token payload")
    return user_id


async def verify_appwrite_account(token: str) -> dict:
    """
    Account owning `token`, as reported by Appwrite.

    The SDK is blocking, so the call runs in a worker thread.

    Raises:
        HTTPException: 401 if Appwrite rejects the token or it names another user
    """
    claimed_id = appwrite_user_id(token)
    account = Account(jwt_client(token))
    try:
        profile = await asyncio.to_thread(account.get)
    except AppwriteException as e:
        log.warning("Appwrite rejected token for user %s: %s", claimed_id, e)
        raise _unauthorized("Failed to verify user")

    if profile.get("$id") != claimed_id:
        log.warning("Token claims user %s but Appwrite returned %s", claimed_id, profile.get("$id"))
        raise _unauthorized("Failed to verify user")
    return profile
