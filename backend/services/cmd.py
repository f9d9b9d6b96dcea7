"""Shared command runner and input validation for privileged export edits.

All subprocess calls go through run_cmd() as argument vectors; nothing is
re-interpreted by a shell. Every caller-supplied value that ends up in a
command line or in /etc/exports is validated here first.
A semaphore keeps subprocesses strictly one at a time.
"""

import asyncio
import ipaddress
import logging
import re

import config

logger = logging.getLogger(__name__)

# One subprocess at a time: each step waits for the previous one to finish
_cmd_semaphore = asyncio.Semaphore(1)

# --- Validation patterns ---
# Export ids: workload/session identifiers such as UUIDs or "vm-123"
_EXPORT_ID_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.:@\-]{0,127}$")

# Hostnames and netgroup-free client names
_HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*$")

# BSD export flags: -alldirs, -ro, -maproot=root, -network=10.0.0.0 ...
_EXPORT_OPTION_RE = re.compile(r"^-[a-zA-Z][a-zA-Z0-9_]*(=[a-zA-Z0-9_.:/,\-]+)?$")

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")

# Characters that are special in a sed basic regular expression or delimit it
_SED_SPECIAL_RE = re.compile(r"([\\/.*\[\]^$])")


class ValidationError(ValueError):
    """Raised when an export id, address, path or line fails validation."""


def validate_export_id(export_id: str) -> str:
    """Validate and return a managed block identifier."""
    if not export_id or not _EXPORT_ID_RE.fullmatch(export_id):
        raise ValidationError(
            f"Invalid export id: {export_id!r}. "
            "Must start with alphanumeric and contain only [a-zA-Z0-9_.:@-]"
        )
    return export_id


def validate_client_address(address: str) -> str:
    """Validate an NFS client specifier: IP address, network or hostname."""
    if not address:
        raise ValidationError("Client address must not be empty")
    try:
        ipaddress.ip_address(address)
        return address
    except ValueError:
        pass
    if "/" in address:
        try:
            ipaddress.ip_network(address, strict=False)
            return address
        except ValueError:
            raise ValidationError(f"Invalid client network: {address!r}")
    if not _HOSTNAME_RE.fullmatch(address):
        raise ValidationError(f"Invalid client address: {address!r}")
    return address


def validate_host_path(path: str) -> str:
    """Validate an exported host directory.

    The renderer wraps the path in double quotes, so quotes and control
    characters are rejected instead of being escaped.
    """
    if not path or not path.startswith("/"):
        raise ValidationError(f"Invalid host path: {path!r}. Must be absolute.")
    if _CONTROL_CHARS_RE.search(path) or '"' in path:
        raise ValidationError(
            f"Invalid host path: {path!r}. Must not contain quotes or control characters."
        )
    return path


def validate_export_option(option: str) -> str:
    """Validate a single BSD export flag such as '-alldirs' or '-maproot=root'."""
    if not option or not _EXPORT_OPTION_RE.fullmatch(option):
        raise ValidationError(f"Invalid export option: {option!r}")
    return option


def validate_marker_id(export_id: str) -> str:
    """Validate an id read back from a begin marker in the export file.

    Looser than validate_export_id: other tools may have written ids with
    spaces or punctuation, which escape_sed_regex handles. Only ids that
    cannot sit on one marker line are refused.
    """
    if not export_id or _CONTROL_CHARS_RE.search(export_id):
        raise ValidationError(f"Invalid export id in marker: {export_id!r}")
    return export_id


def validate_export_line(line: str) -> str:
    """Validate one line destined for the export file."""
    if _CONTROL_CHARS_RE.search(line.replace("\t", " ")):
        raise ValidationError(f"Invalid export line: {line!r}. Contains control characters.")
    return line


def escape_sed_regex(text: str) -> str:
    """Escape text for literal use inside a /.../ sed address."""
    return _SED_SPECIAL_RE.sub(r"\\\1", text)


def sudo(*args: str) -> list[str]:
    """Prefix an argument vector with the configured escalation command."""
    return [*config.SUDO, *args]


async def run_cmd(cmd: list[str], input_text: str | None = None) -> tuple[str, str, int]:
    """Run a command and wait for it to finish.

    ``input_text`` is written to the process's stdin when given.
    Returns (stdout, stderr, returncode). There is no timeout: a hung
    command blocks the caller.
    """
    async with _cmd_semaphore:
        logger.debug("Running command: %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            binary = cmd[0] if cmd else "(empty)"
            logger.error("Command not found: %s", binary)
            return "", f"{binary}: command not found", 127
        stdin_bytes = input_text.encode() if input_text is not None else None
        stdout, stderr = await proc.communicate(stdin_bytes)
        return stdout.decode(), stderr.decode(), proc.returncode
