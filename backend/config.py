"""Runtime configuration for NFS Export Manager.

Every setting can be overridden from the environment. Paths default to the
BSD/Darwin layout: /etc/exports, /etc/sudoers.d and /sbin/nfsd.
"""

import grp
import os
from pathlib import Path

EXPORTS_FILE = Path(os.environ.get("NFS_EXPORTS_FILE", "/etc/exports"))

SUDOERS_FILE = Path(os.environ.get("NFS_SUDOERS_FILE", "/etc/sudoers"))
SUDOERS_DIR = Path(os.environ.get("NFS_SUDOERS_DIR", "/etc/sudoers.d"))
SUDOERS_POLICY = SUDOERS_DIR / os.environ.get("NFS_SUDOERS_POLICY", "vagrant")

# Escalation prefix, e.g. "sudo -n" to fail instead of prompting
SUDO = os.environ.get("NFS_SUDO", "sudo").split()

NFSD_BIN = os.environ.get("NFSD_BIN", "/sbin/nfsd")

# Absolute paths so the sudoers aliases match the argv we actually run
TEE_BIN = "/usr/bin/tee"
SED_BIN = "/usr/bin/sed"
MKDIR_BIN = "/bin/mkdir"
CAT_BIN = "/bin/cat"
CHMOD_BIN = "/bin/chmod"

PROBE_ATTEMPTS = int(os.environ.get("NFS_PROBE_ATTEMPTS", "10"))

# Pause after the user-facing notice so console output lands before sudo prompts
EXPORT_FLUSH_DELAY = float(os.environ.get("NFS_EXPORT_FLUSH_DELAY", "0.5"))

DB_PATH = os.environ.get(
    "NFS_MANAGER_DB",
    os.path.join(os.path.dirname(__file__), "data", "nfs-manager.db"),
)

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")


def policy_group() -> str:
    """Group granted passwordless execution: NFS_POLICY_GROUP or our primary group.

    A primary gid with no group entry comes back as "#<gid>", which sudoers
    reads as a numeric gid when written as "%#<gid>".
    """
    group = os.environ.get("NFS_POLICY_GROUP")
    if group:
        return group
    try:
        return grp.getgrgid(os.getgid()).gr_name
    except KeyError:
        return f"#{os.getgid()}"
