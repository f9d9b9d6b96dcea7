"""Render a managed /etc/exports block for one workload.

Output format (BSD exports(5)):

    # VAGRANT-BEGIN: <id>
    "/host/path" -alldirs -mapall=501:20 192.168.1.5
    # VAGRANT-END: <id>
"""

from collections.abc import Sequence

from models import FolderMapping
from services.cmd import (
    validate_client_address,
    validate_export_id,
    validate_export_option,
    validate_host_path,
)

BEGIN_MARKER = "# VAGRANT-BEGIN: {}"
END_MARKER = "# VAGRANT-END: {}"


def begin_marker(export_id: str) -> str:
    return BEGIN_MARKER.format(export_id)


def end_marker(export_id: str) -> str:
    return END_MARKER.format(export_id)


def render_entry(folder: FolderMapping, ip: str) -> str:
    """Render one export line for ``folder`` shared with ``ip``."""
    parts = [f'"{validate_host_path(folder.hostpath)}"']
    parts.extend(validate_export_option(opt) for opt in folder.options)
    if folder.map_uid is not None:
        mapall = str(folder.map_uid)
        if folder.map_gid is not None:
            mapall += f":{folder.map_gid}"
        parts.append(f"-mapall={mapall}")
    parts.append(ip)
    return " ".join(parts)


def render_exports(export_id: str, ip: str, folders: Sequence[FolderMapping]) -> str:
    """Return the block text: begin marker, one line per folder in order, end marker."""
    validate_export_id(export_id)
    validate_client_address(ip)
    lines = [begin_marker(export_id)]
    lines.extend(render_entry(folder, ip) for folder in folders)
    lines.append(end_marker(export_id))
    return "\n".join(lines) + "\n"
