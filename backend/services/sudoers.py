"""Passwordless sudo policy for the export commands.

Creates <sudoers.d>/<policy> the first time an export is edited, granting the
invoking user's group NOPASSWD access to exactly three commands: appending to
the export file, restarting nfsd, and deleting a block with sed.

See sudoers(5): the include directory must exist before /etc/sudoers points
at it, or sudo stops working altogether.
"""

import logging
import os
import re
from collections.abc import Callable
from pathlib import Path

import config
from exceptions import SetupFailureError
from services import cmd

logger = logging.getLogger(__name__)

# "#includedir" (classic) or "@includedir" (sudo 1.9.1+)
_INCLUDEDIR_RE = re.compile(r"^[#@]includedir\s+(\S+)\s*$")

Notify = Callable[[str], None]


def _log_notice(message: str) -> None:
    logger.info(message)


def render_policy(group: str) -> str:
    """Return the sudoers fragment granting ``group`` the three export commands."""
    exports = config.EXPORTS_FILE
    return (
        "# Allow passwordless startup of Vagrant when using NFS.\n"
        f"Cmnd_Alias VAGRANT_EXPORTS_ADD = {config.TEE_BIN} -a {exports}\n"
        f"Cmnd_Alias VAGRANT_NFSD = {config.NFSD_BIN} restart\n"
        f"Cmnd_Alias VAGRANT_EXPORTS_REMOVE = {config.SED_BIN} -e /*/ d -ibak {exports}\n"
        f"%{group} ALL=(root) NOPASSWD: VAGRANT_EXPORTS_ADD, VAGRANT_NFSD, VAGRANT_EXPORTS_REMOVE\n"
    )


class PolicyManager:
    """Idempotent creator of the sudo policy fragment.

    ``ensure()`` is cheap once the policy exists (a single stat) and is
    re-checked at the start of every mutating export call. Existence is the
    only gate: an existing but stale policy is left alone.
    """

    def __init__(
        self,
        policy_path: Path | None = None,
        sudoers_file: Path | None = None,
        group: str | None = None,
    ) -> None:
        self.policy_path = policy_path or config.SUDOERS_POLICY
        self.sudoers_file = sudoers_file or config.SUDOERS_FILE
        self.group = group or config.policy_group()

    @property
    def policy_dir(self) -> Path:
        return self.policy_path.parent

    @property
    def include_directive(self) -> str:
        return f"#includedir {self.policy_dir}"

    def includes_policy_dir(self, sudoers_text: str) -> bool:
        """True if the sudoers text already includes the policy directory.

        Paths are compared after resolving symlinks, so "/private/etc/sudoers.d"
        on macOS matches "/etc/sudoers.d".
        """
        wanted = os.path.realpath(self.policy_dir)
        for line in sudoers_text.splitlines():
            match = _INCLUDEDIR_RE.match(line.strip())
            if match and os.path.realpath(match.group(1)) == wanted:
                return True
        return False

    def exists(self) -> bool:
        # os.path.exists treats an unreadable sudoers.d as "missing"
        return os.path.exists(self.policy_path)

    async def ensure(self, notify: Notify | None = None) -> bool:
        """Create the policy if it is missing.

        Returns True when the policy was created, False when it already
        existed (no privileged command is run in that case). Raises
        SetupFailureError naming the first step that failed; completed
        steps are not rolled back.
        """
        if self.exists():
            return False

        notify = notify or _log_notice
        policy_dir = str(self.policy_dir)
        policy_path = str(self.policy_path)
        sudoers_file = str(self.sudoers_file)

        notify(f"Creating {policy_dir}")
        await self._step(
            f"mkdir {policy_dir}",
            cmd.sudo(config.MKDIR_BIN, "-p", policy_dir),
        )

        sudoers = await self._step(
            f"read {sudoers_file}",
            cmd.sudo(config.CAT_BIN, sudoers_file),
        )
        if not self.includes_policy_dir(sudoers):
            notify(f"Adding '{self.include_directive}' to {sudoers_file}")
            await self._step(
                f"append include directive to {sudoers_file}",
                cmd.sudo(config.TEE_BIN, "-a", sudoers_file),
                input_text=f"\n{self.include_directive}\n",
            )

        notify(f"Adding {policy_path} file")
        await self._step(
            f"write {policy_path}",
            cmd.sudo(config.TEE_BIN, policy_path),
            input_text=render_policy(self.group),
        )

        notify(f"Updating {policy_path} permissions to 0440")
        await self._step(
            f"chmod 0440 {policy_path}",
            cmd.sudo(config.CHMOD_BIN, "0440", policy_path),
        )

        logger.info("Created sudo policy %s for group %s", policy_path, self.group)
        return True

    async def _step(self, step: str, argv: list[str], input_text: str | None = None) -> str:
        stdout, stderr, rc = await cmd.run_cmd(argv, input_text=input_text)
        if rc != 0:
            logger.error("Sudo policy setup step failed: %s (rc=%d): %s", step, rc, stderr.strip())
            raise SetupFailureError(step, stderr=stderr, returncode=rc)
        return stdout


_default: PolicyManager | None = None


def get_policy_manager() -> PolicyManager:
    """Return the process-wide PolicyManager, built lazily from config."""
    global _default
    if _default is None:
        _default = PolicyManager()
    return _default
