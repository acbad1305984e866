import os
import subprocess
from functools import lru_cache
from importlib import metadata
from pathlib import Path
from typing import Dict

from ..config import settings

DISTRIBUTION_NAME = "hoa-manager"
REPO_ROOT = Path(__file__).resolve().parents[2]


def package_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0+local"


def _git_sha() -> str:
    try:
        output = subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=REPO_ROOT,
            stderr=subprocess.DEVNULL,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    return output.decode("utf-8").strip() or "unknown"


@lru_cache
def get_version_info() -> Dict[str, str]:
    """Describe the running build; deploys may pin GIT_SHA and BUILD_TIME."""
    return {
        "app": settings.app_name,
        "version": package_version(),
        "gitSha": os.getenv("GIT_SHA") or _git_sha(),
        "buildTime": os.getenv("BUILD_TIME", "unknown"),
        "env": settings.app_env,
    }
