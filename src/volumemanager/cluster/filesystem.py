"""Cluster filesystem operations through the `hadoop` command line."""

import logging
import subprocess
from typing import List

from ..errors import FileSystemError

logger = logging.getLogger(__name__)

PUBLIC_ACE = "p"
PUBLIC_GRANTS = (
    "readfile",
    "writefile",
    "executefile",
    "readdir",
    "addchild",
    "deletechild",
    "lookupdir",
)


def run_hadoop(*args: str, timeout: int = 120) -> subprocess.CompletedProcess:
    """Run a hadoop command with proper error handling."""
    cmd: List[str] = ["hadoop", *args]
    logger.debug(f"Running {' '.join(cmd)}")
    try:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise FileSystemError(f"Command timed out: {' '.join(cmd)}")
    except OSError as e:
        raise FileSystemError(f"Could not run {cmd[0]}: {e}")


def _check(result: subprocess.CompletedProcess, action: str) -> None:
    if result.returncode != 0:
        raise FileSystemError(f"{action} failed (exit {result.returncode}): {result.stderr.strip()}")


class HadoopFileSystem:
    def ensure_directory(self, path: str) -> None:
        """Creates `path` with mode 755 unless it already exists."""
        if run_hadoop("fs", "-test", "-d", path).returncode == 0:
            logger.info(f"Parent directory {path} exists")
            return
        logger.info(f"Creating directory {path}")
        _check(run_hadoop("fs", "-mkdir", "-p", path), f"mkdir {path}")
        _check(run_hadoop("fs", "-chmod", "755", path), f"chmod {path}")

    def set_owner(self, path: str, owner: str, group: str) -> None:
        _check(run_hadoop("fs", "-chown", f"{owner}:{group}", path), f"chown {path}")

    def set_permission(self, path: str, permission: str) -> None:
        _check(run_hadoop("fs", "-chmod", permission, path), f"chmod {path}")


class PublicAclService:
    """Applies the fixed public grant set on a path."""

    def set_path_public_grants(self, path: str) -> None:
        args = ["mfs", "-setace"]
        for grant in PUBLIC_GRANTS:
            args.extend([f"-{grant}", PUBLIC_ACE])
        args.append(path)
        _check(run_hadoop(*args), f"setace {path}")
