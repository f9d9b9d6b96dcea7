"""Managed export block API routes."""

from fastapi import APIRouter, Depends, HTTPException

from middleware.auth import get_current_user
from models import ExportBlock, ExportWriteRequest, ExportWriteResponse, PruneRequest, PruneResponse
from services import nfs_exports
from services.cmd import ValidationError
from exceptions import ExportError
from db import audit_log

router = APIRouter()


def _block_to_model(block: nfs_exports.ManagedBlock) -> ExportBlock:
    return ExportBlock(
        id=block.export_id,
        lines=list(block.lines),
        start=block.start,
        end=block.end,
        terminated=block.terminated,
    )


@router.get("", response_model=list[ExportBlock])
async def list_exports(user: dict = Depends(get_current_user)):
    """List the managed blocks in the export file."""
    return [_block_to_model(b) for b in nfs_exports.list_blocks()]


@router.get("/{export_id}", response_model=ExportBlock)
async def get_export(export_id: str, user: dict = Depends(get_current_user)):
    block = nfs_exports.get_block(export_id)
    if block is None:
        raise HTTPException(status_code=404, detail=f"No export block for {export_id}")
    return _block_to_model(block)


@router.put("/{export_id}", response_model=ExportWriteResponse)
async def write_exports(
    export_id: str, body: ExportWriteRequest, user: dict = Depends(get_current_user)
):
    """Replace the export block for a workload and restart nfsd."""
    notices: list[str] = []
    detail = f"{body.ip}: " + ", ".join(f.hostpath for f in body.folders)
    async with nfs_exports.exports_lock:
        try:
            await nfs_exports.write_exports(export_id, body.ip, body.folders, notify=notices.append)
        except (ExportError, ValidationError) as e:
            await audit_log(user["username"], "exports.write", export_id, detail=str(e), success=False)
            raise
    await audit_log(user["username"], "exports.write", export_id, detail=detail)
    return ExportWriteResponse(message=f"Exports for {export_id} written", notices=notices)


@router.post("/prune", response_model=PruneResponse)
async def prune_exports(body: PruneRequest, user: dict = Depends(get_current_user)):
    """Remove every export block whose id is not in valid_ids."""
    notices: list[str] = []
    async with nfs_exports.exports_lock:
        try:
            pruned = await nfs_exports.prune_exports(body.valid_ids, notify=notices.append)
        except (ExportError, ValidationError) as e:
            await audit_log(user["username"], "exports.prune", "*", detail=str(e), success=False)
            raise
    if pruned:
        await audit_log(user["username"], "exports.prune", ",".join(pruned))
    return PruneResponse(pruned=pruned, notices=notices)
