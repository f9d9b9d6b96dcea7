"""NFS export exception hierarchy.

Maps privileged command failures to structured exceptions with HTTP status
codes. Used by route handlers to return appropriate error responses.
"""

import re


class ExportError(Exception):
    """Base exception for all export management failures."""

    status_code: int = 500

    def __init__(self, message: str, stderr: str = "", returncode: int = 1) -> None:
        self.message = message
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message)


class SetupFailureError(ExportError):
    """A sudo policy bootstrap step failed."""

    def __init__(self, step: str, stderr: str = "", returncode: int = 1) -> None:
        self.step = step
        detail = stderr.strip().split("\n")[0] if stderr.strip() else ""
        message = f"{step} failed" + (f": {detail}" if detail else "")
        super().__init__(message, stderr=stderr, returncode=returncode)


class CommandFailureError(ExportError):
    """A privileged append, restart or stream edit returned nonzero."""

    def __init__(
        self, message: str, command: str = "", stderr: str = "", returncode: int = 1
    ) -> None:
        self.command = command
        super().__init__(message, stderr=stderr, returncode=returncode)


class SudoPermissionError(CommandFailureError):
    """sudo refused the command or wanted a password."""

    status_code = 403


class ExportsFileMissingError(CommandFailureError):
    """The file a command operated on does not exist."""

    status_code = 404


# --- Stderr pattern matching ---
# Ordered by specificity — first match wins.
_ERROR_PATTERNS: list[tuple[re.Pattern[str], type[CommandFailureError]]] = [
    (re.compile(r"a password is required", re.IGNORECASE), SudoPermissionError),
    (re.compile(r"no tty present", re.IGNORECASE), SudoPermissionError),
    (re.compile(r"a terminal is required", re.IGNORECASE), SudoPermissionError),
    (re.compile(r"is not in the sudoers file", re.IGNORECASE), SudoPermissionError),
    (re.compile(r"is not allowed to execute", re.IGNORECASE), SudoPermissionError),
    (re.compile(r"permission denied", re.IGNORECASE), SudoPermissionError),
    (re.compile(r"operation not permitted", re.IGNORECASE), SudoPermissionError),
    (re.compile(r"no such file or directory", re.IGNORECASE), ExportsFileMissingError),
]


def parse_command_error(command: str, stderr: str, returncode: int = 1) -> CommandFailureError:
    """Parse a failed command's stderr and return the appropriate exception.

    The message always names the failed command, followed by the first line
    of stderr when there is one.
    """
    first_line = stderr.strip().split("\n")[0] if stderr.strip() else ""
    message = f"{command} failed" + (f": {first_line}" if first_line else "")

    for pattern, exc_class in _ERROR_PATTERNS:
        if pattern.search(stderr):
            return exc_class(message, command=command, stderr=stderr, returncode=returncode)

    return CommandFailureError(message, command=command, stderr=stderr, returncode=returncode)
