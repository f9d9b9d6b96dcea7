"""nfsd availability probe and restart."""

import enum
import logging
import os

import config
from exceptions import parse_command_error
from services import cmd

logger = logging.getLogger(__name__)


class ProbeResult(enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    # Spawning the probe itself failed transiently (fork EAGAIN, EINTR)
    RETRYABLE = "retryable"


async def probe_once() -> ProbeResult:
    """Check once whether the nfsd binary is on PATH.

    Transient process-spawn failures are reported as RETRYABLE instead of
    raised; any other exception propagates.
    """
    binary = os.path.basename(config.NFSD_BIN)
    try:
        _, _, rc = await cmd.run_cmd(["which", binary])
    except (BlockingIOError, InterruptedError) as e:
        logger.debug("nfsd probe hit a transient error: %s", e)
        return ProbeResult.RETRYABLE
    return ProbeResult.AVAILABLE if rc == 0 else ProbeResult.UNAVAILABLE


async def is_available(attempts: int | None = None) -> bool:
    """Probe for nfsd, retrying RETRYABLE outcomes up to ``attempts`` times.

    Exhausting the budget returns the last observed result, which is False
    when every attempt was retryable.
    """
    attempts = attempts or config.PROBE_ATTEMPTS
    result = ProbeResult.RETRYABLE
    for attempt in range(1, attempts + 1):
        result = await probe_once()
        if result is not ProbeResult.RETRYABLE:
            break
        logger.debug("nfsd probe attempt %d/%d was retryable", attempt, attempts)
    else:
        logger.warning("nfsd probe gave no definite answer after %d attempts", attempts)
    return result is ProbeResult.AVAILABLE


async def restart() -> None:
    """Restart (not reload) nfsd; it may not be running yet."""
    argv = cmd.sudo(config.NFSD_BIN, "restart")
    _, stderr, rc = await cmd.run_cmd(argv)
    if rc != 0:
        logger.error("nfsd restart failed (rc=%d): %s", rc, stderr.strip())
        raise parse_command_error(f"{config.NFSD_BIN} restart", stderr, rc)
    logger.info("Restarted nfsd")
