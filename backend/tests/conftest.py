"""Shared fixtures for the NFS Export Manager test suite.

Provides:
- sys.path setup so imports work like the backend does (from services.cmd, etc.)
- In-memory SQLite database fixture for pure async db tests
- FakeHost: a stand-in for sudo, tee, sed, mkdir, cat, chmod, nfsd and which
  that applies each command to files under tmp_path
- FastAPI TestClient with mocked auth dependency and in-app db patching
"""

import os
import re
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
import aiosqlite

# --- Path setup: backend/ must be on sys.path so bare imports work ---
BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import config
import db as db_module
from services import sudoers


# ---------------------------------------------------------------------------
# In-memory database fixture (for pure async tests like test_db.py)
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_db():
    """Create an in-memory SQLite database with the full schema.

    Sets db_module._db directly so every db helper uses it; get_db()
    returns _db immediately when it is already set.
    """
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.executescript(db_module.SCHEMA)
    await conn.commit()

    original_db = db_module._db
    db_module._db = conn

    yield conn

    db_module._db = original_db
    await conn.close()


# ---------------------------------------------------------------------------
# Mock subprocess fixture -- prevents real commands
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_run_cmd():
    """Patch services.cmd.run_cmd so no subprocess is ever created.

    Returns the AsyncMock so tests can configure return_value / side_effect.
    Default return is ("", "", 0) -- success with empty output.
    """
    mock = AsyncMock(return_value=("", "", 0))
    with patch("services.cmd.run_cmd", mock):
        yield mock


# ---------------------------------------------------------------------------
# Fake host -- privileged commands applied to a temp directory
# ---------------------------------------------------------------------------

_SED_EXPR_RE = re.compile(r"^/\^(.*)\$/,/\^(.*)\$/ d$")


def _sed_unescape(pattern: str) -> str:
    return re.sub(r"\\(.)", r"\1", pattern)


class FakeHost:
    """Interprets the argument vectors the services run.

    ``calls`` records every argv (sudo prefix included). ``failures`` maps a
    binary path to the stderr it should fail with.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.exports = root / "etc" / "exports"
        self.sudoers_file = root / "etc" / "sudoers"
        self.sudoers_dir = root / "etc" / "sudoers.d"
        self.policy = self.sudoers_dir / "vagrant"
        self.calls: list[list[str]] = []
        self.failures: dict[str, str] = {}
        self.nfsd_installed = True
        self.restarts = 0

        (root / "etc").mkdir(parents=True)
        self.sudoers_file.write_text("root ALL=(ALL) ALL\n")

    # --- helpers for tests ---

    def install_policy(self) -> None:
        self.sudoers_dir.mkdir(exist_ok=True)
        self.policy.write_text("# existing policy\n")

    def privileged_calls(self) -> list[list[str]]:
        return [c for c in self.calls if c and c[0] == "sudo"]

    def calls_to(self, binary: str) -> list[list[str]]:
        return [c for c in self.calls if binary in c[:2]]

    # --- command dispatch ---

    async def run(self, cmd: list[str], input_text: str | None = None) -> tuple[str, str, int]:
        self.calls.append(list(cmd))
        argv = cmd[1:] if cmd and cmd[0] == "sudo" else list(cmd)
        binary = argv[0]

        if binary in self.failures:
            return "", self.failures[binary], 1

        if binary == config.MKDIR_BIN:
            Path(argv[-1]).mkdir(parents=True, exist_ok=True)
            return "", "", 0
        if binary == config.CAT_BIN:
            path = Path(argv[1])
            if not path.exists():
                return "", f"cat: {path}: No such file or directory", 1
            return path.read_text(), "", 0
        if binary == config.TEE_BIN:
            path = Path(argv[-1])
            mode = "a" if "-a" in argv else "w"
            with path.open(mode) as f:
                f.write(input_text or "")
            return input_text or "", "", 0
        if binary == config.CHMOD_BIN:
            os.chmod(argv[2], int(argv[1], 8))
            return "", "", 0
        if binary == config.SED_BIN:
            return self._sed(argv)
        if binary == config.NFSD_BIN and argv[1:] == ["restart"]:
            self.restarts += 1
            return "", "", 0
        if binary == "which":
            return ("/sbin/nfsd\n", "", 0) if self.nfsd_installed else ("", "", 1)
        raise AssertionError(f"unexpected command: {cmd}")

    def _sed(self, argv: list[str]) -> tuple[str, str, int]:
        assert argv[1] == "-e" and argv[3] == "-ibak", argv
        match = _SED_EXPR_RE.match(argv[2])
        assert match, argv[2]
        begin, end = _sed_unescape(match.group(1)), _sed_unescape(match.group(2))

        path = Path(argv[4])
        original = path.read_text()
        Path(str(path) + "bak").write_text(original)

        kept = []
        in_range = False
        for line in original.splitlines(keepends=True):
            text = line.rstrip("\n")
            if in_range:
                if text == end:
                    in_range = False
                continue
            if text == begin:
                in_range = True
                continue
            kept.append(line)
        path.write_text("".join(kept))
        return "", "", 0


@pytest.fixture
def fake_host(tmp_path, monkeypatch):
    """Point config at tmp_path and route run_cmd through a FakeHost."""
    host = FakeHost(tmp_path)
    monkeypatch.setattr(config, "EXPORTS_FILE", host.exports)
    monkeypatch.setattr(config, "SUDOERS_FILE", host.sudoers_file)
    monkeypatch.setattr(config, "SUDOERS_DIR", host.sudoers_dir)
    monkeypatch.setattr(config, "SUDOERS_POLICY", host.policy)
    monkeypatch.setattr(config, "SUDO", ["sudo"])
    monkeypatch.setattr(config, "EXPORT_FLUSH_DELAY", 0)
    monkeypatch.setenv("NFS_POLICY_GROUP", "staff")
    monkeypatch.setattr(sudoers, "_default", None)
    with patch("services.cmd.run_cmd", side_effect=host.run):
        yield host


# ---------------------------------------------------------------------------
# FastAPI TestClient with authentication bypassed
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_current_user():
    return {"username": "testadmin"}


@pytest.fixture
def client(mock_current_user, fake_host):
    """Provide a synchronous TestClient for the FastAPI app.

    - Authentication is bypassed (get_current_user returns a fixed user).
    - get_db is replaced so an in-memory connection is created on the
      TestClient's event loop.
    - Every command goes to the fake_host fixture.
    """
    from fastapi.testclient import TestClient
    from middleware.auth import get_current_user
    from main import app

    async def _override_user():
        return mock_current_user

    app.dependency_overrides[get_current_user] = _override_user

    _test_conn = None
    original_get_db = db_module.get_db
    original_db = db_module._db

    async def _test_get_db():
        nonlocal _test_conn
        if _test_conn is None:
            _test_conn = await aiosqlite.connect(":memory:")
            _test_conn.row_factory = aiosqlite.Row
            await _test_conn.executescript(db_module.SCHEMA)
            await _test_conn.commit()
            db_module._db = _test_conn
        return _test_conn

    db_module.get_db = _test_get_db

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c

    db_module.get_db = original_get_db
    db_module._db = original_db
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Headers required for mutating requests (CSRF protection)."""
    return {"X-Requested-With": "XMLHttpRequest"}
