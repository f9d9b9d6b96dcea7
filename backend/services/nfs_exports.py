"""Managed NFS export blocks in the system export table.

Each workload owns one block in /etc/exports, delimited by

    # VAGRANT-BEGIN: <id>
    ...
    # VAGRANT-END: <id>

Writing a block always removes the previous block for the same id first, so
repeating or retrying a write converges on a single block. Other content in
the file is never touched.

Callers must serialize mutating calls (exports_lock does this in-process);
there is no locking against other processes editing the file.
"""

import asyncio
import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

import config
from exceptions import parse_command_error
from models import FolderMapping
from services import cmd, nfsd
from services.exports_template import begin_marker, end_marker, render_exports
from services.sudoers import get_policy_manager

logger = logging.getLogger(__name__)

Notify = Callable[[str], None]

EXPORT_NOTICE = (
    "Preparing to edit nfs exports. Administrator privileges will be required..."
)
PRUNE_NOTICE = (
    "Pruning invalid NFS exports. Administrator privileges will be required..."
)

_BEGIN_RE = re.compile(r"^# VAGRANT-BEGIN: (.+?)$")
_END_RE = re.compile(r"^# VAGRANT-END: (.+?)$")

# Serializes write/prune calls made through the API
exports_lock = asyncio.Lock()


@dataclass(frozen=True)
class ManagedBlock:
    """One tagged region of the export file.

    ``start``/``end`` are zero-based line numbers of the markers. An
    unterminated block runs to the end of the file and has ``end`` None.
    """

    export_id: str
    lines: tuple[str, ...]
    start: int
    end: int | None

    @property
    def terminated(self) -> bool:
        return self.end is not None


def _log_notice(message: str) -> None:
    logger.info(message)


def parse_blocks(text: str) -> list[ManagedBlock]:
    """Parse every managed block out of export file text, in file order."""
    blocks: list[ManagedBlock] = []
    current_id: str | None = None
    start = 0
    body: list[str] = []

    for lineno, line in enumerate(text.splitlines()):
        if current_id is None:
            match = _BEGIN_RE.match(line)
            if match:
                current_id, start, body = match.group(1), lineno, []
            continue
        end_match = _END_RE.match(line)
        if end_match and end_match.group(1) == current_id:
            blocks.append(ManagedBlock(current_id, tuple(body), start, lineno))
            current_id = None
        else:
            body.append(line)

    if current_id is not None:
        logger.warning("Export block %s has no end marker", current_id)
        blocks.append(ManagedBlock(current_id, tuple(body), start, None))
    return blocks


def list_blocks() -> list[ManagedBlock]:
    """Return the managed blocks currently in the export file."""
    if not config.EXPORTS_FILE.exists():
        return []
    return parse_blocks(config.EXPORTS_FILE.read_text())


def get_block(export_id: str) -> ManagedBlock | None:
    cmd.validate_export_id(export_id)
    for block in list_blocks():
        if block.export_id == export_id:
            return block
    return None


def _sed_delete_expression(export_id: str) -> str:
    begin = cmd.escape_sed_regex(begin_marker(export_id))
    end = cmd.escape_sed_regex(end_marker(export_id))
    return f"/^{begin}$/,/^{end}$/ d"


async def _remove_block(
    export_id: str,
    notify: Notify | None = None,
    *,
    from_file: bool = False,
) -> None:
    """Delete the block for ``export_id``, markers included.

    sed keeps the pre-edit file as <exports>bak. A begin marker without a
    matching end marker makes sed delete through the end of the file.
    Ids parsed from the file (``from_file``) only need to be escapable;
    ids from callers must pass validate_export_id.
    """
    if from_file:
        cmd.validate_marker_id(export_id)
    else:
        cmd.validate_export_id(export_id)
    await get_policy_manager().ensure(notify)

    exports = config.EXPORTS_FILE
    if not exports.exists():
        return

    argv = cmd.sudo(config.SED_BIN, "-e", _sed_delete_expression(export_id), "-ibak", str(exports))
    _, stderr, rc = await cmd.run_cmd(argv)
    if rc != 0:
        logger.error("Removing export block %s failed (rc=%d): %s", export_id, rc, stderr.strip())
        raise parse_command_error(f"{config.SED_BIN} -ibak {exports}", stderr, rc)
    logger.debug("Removed export block %s", export_id)


async def write_exports(
    export_id: str,
    ip: str,
    folders: Sequence[FolderMapping],
    notify: Notify | None = None,
) -> None:
    """Replace the block for ``export_id`` with freshly rendered entries and restart nfsd."""
    notify = notify or _log_notice
    output = render_exports(export_id, ip, folders)
    lines = [cmd.validate_export_line(line) for line in output.splitlines()]

    notify(EXPORT_NOTICE)
    if config.EXPORT_FLUSH_DELAY > 0:
        await asyncio.sleep(config.EXPORT_FLUSH_DELAY)

    await _remove_block(export_id, notify)

    exports = str(config.EXPORTS_FILE)
    for line in lines:
        # One append per line; the line travels on stdin, never through a shell
        argv = cmd.sudo(config.TEE_BIN, "-a", exports)
        _, stderr, rc = await cmd.run_cmd(argv, input_text=line + "\n")
        if rc != 0:
            logger.error("Appending to %s failed (rc=%d): %s", exports, rc, stderr.strip())
            raise parse_command_error(f"{config.TEE_BIN} -a {exports}", stderr, rc)

    await nfsd.restart()
    logger.info("Exported %d folder(s) for %s to %s", len(folders), export_id, ip)


async def prune_exports(valid_ids: Iterable[str], notify: Notify | None = None) -> list[str]:
    """Remove every managed block whose id is not in ``valid_ids``.

    Decisions are made against the file as read at the start; each stale id
    is removed once. Returns the pruned ids in file order.
    """
    exports = config.EXPORTS_FILE
    if not exports.exists():
        return []

    notify = notify or _log_notice
    valid = {str(v) for v in valid_ids}
    logger.info("Pruning invalid NFS entries...")

    warned = False
    pruned: list[str] = []
    for line in exports.read_text().splitlines():
        match = _BEGIN_RE.match(line)
        if not match:
            continue
        export_id = match.group(1)
        if export_id in valid:
            logger.debug("Valid ID: %s", export_id)
            continue
        if export_id in pruned:
            continue
        try:
            cmd.validate_marker_id(export_id)
        except cmd.ValidationError:
            logger.warning("Skipping export block with unusable id: %r", export_id)
            continue

        if not warned:
            notify(PRUNE_NOTICE)
            warned = True

        logger.info("Invalid ID, pruning: %s", export_id)
        await _remove_block(export_id, notify, from_file=True)
        pruned.append(export_id)

    return pruned
