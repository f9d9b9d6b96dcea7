"""PAM login and session cookies for the export API.

Only members of the policy group (the group the sudo policy grants) may log
in: anyone else could not run the export commands anyway.
"""

import grp
import logging
import pwd

import pam
from fastapi import Cookie, HTTPException, Request, Response

import config
from db import SESSION_LIFETIME, create_session, delete_session, get_session

logger = logging.getLogger(__name__)

_pam = pam.pam()

COOKIE_NAME = "nfs_session"

_MUTATING_METHODS = ("POST", "PUT", "DELETE", "PATCH")


def authenticate_user(username: str, password: str) -> bool:
    return _pam.authenticate(username, password)


def is_policy_member(username: str) -> bool:
    """True if ``username`` belongs to the policy group, primary or supplementary."""
    group_name = config.policy_group()
    try:
        user = pwd.getpwnam(username)
    except KeyError:
        return False
    if group_name.startswith("#"):
        gid = int(group_name[1:])
        try:
            members = grp.getgrgid(gid).gr_mem
        except KeyError:
            members = []
        return user.pw_gid == gid or username in members
    try:
        group = grp.getgrnam(group_name)
    except KeyError:
        return False
    return user.pw_gid == group.gr_gid or username in group.gr_mem


async def login(username: str, password: str, response: Response) -> dict:
    """Authenticate via PAM, check group membership, set the session cookie."""
    if not authenticate_user(username, password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not is_policy_member(username):
        logger.warning("Rejected login for %s: not in group %s", username, config.policy_group())
        raise HTTPException(status_code=403, detail="User may not manage NFS exports")

    session_id = await create_session(username)
    response.set_cookie(
        key=COOKIE_NAME,
        value=session_id,
        httponly=True,
        samesite="lax",
        path="/api",
        max_age=SESSION_LIFETIME,
    )
    logger.info("User %s logged in", username)
    return {"username": username, "message": "Login successful"}


async def logout(response: Response, session_id: str | None = None) -> dict:
    if session_id:
        await delete_session(session_id)
    response.delete_cookie(key=COOKIE_NAME, path="/api")
    return {"message": "Logged out"}


async def get_current_user(
    request: Request,
    nfs_session: str | None = Cookie(None),
) -> dict:
    """Dependency: resolve the session cookie to a user.

    Mutating requests must also carry X-Requested-With: XMLHttpRequest.
    """
    if request.method in _MUTATING_METHODS:
        if request.headers.get("X-Requested-With") != "XMLHttpRequest":
            raise HTTPException(status_code=403, detail="Missing CSRF header")

    if not nfs_session:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = await get_session(nfs_session)
    if session is None:
        raise HTTPException(status_code=401, detail="Session expired or invalid")

    return {"username": session["username"]}
