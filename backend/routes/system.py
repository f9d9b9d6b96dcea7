"""nfsd status, sudo policy and audit log API routes."""

from fastapi import APIRouter, Depends

from middleware.auth import get_current_user
from models import NfsdStatus, PolicyEnsureResponse, PolicyStatus
from services import nfsd
from services.sudoers import get_policy_manager
from exceptions import ExportError
from db import audit_log, get_audit_log

router = APIRouter()


@router.get("/nfs", response_model=NfsdStatus)
async def nfs_status(user: dict = Depends(get_current_user)):
    """Whether nfsd is installed, so callers can skip export management without it."""
    return NfsdStatus(available=await nfsd.is_available())


@router.get("/policy", response_model=PolicyStatus)
async def policy_status(user: dict = Depends(get_current_user)):
    manager = get_policy_manager()
    return PolicyStatus(path=str(manager.policy_path), exists=manager.exists(), group=manager.group)


@router.post("/policy", response_model=PolicyEnsureResponse)
async def ensure_policy(user: dict = Depends(get_current_user)):
    """Create the sudo policy now instead of on the first export edit."""
    manager = get_policy_manager()
    notices: list[str] = []
    try:
        created = await manager.ensure(notify=notices.append)
    except ExportError as e:
        await audit_log(user["username"], "policy.ensure", str(manager.policy_path), detail=e.message, success=False)
        raise
    if created:
        await audit_log(user["username"], "policy.ensure", str(manager.policy_path))
    return PolicyEnsureResponse(created=created, notices=notices)


@router.get("/audit")
async def audit(
    limit: int = 100,
    offset: int = 0,
    action: str | None = None,
    user: dict = Depends(get_current_user),
):
    return await get_audit_log(limit=limit, offset=offset, action=action)
