"""Version and commit of the running host, reported on /health and /status.

CI sets LOTO_BUILD_VERSION and LOTO_BUILD_COMMIT. Locally the version comes
from the installed package metadata and the commit from git.
"""

import functools
import os
import subprocess
from dataclasses import asdict, dataclass
from importlib import metadata

DISTRIBUTION = "loto-room"
UNKNOWN = "dev"


@dataclass(frozen=True)
class BuildInfo:
    version: str
    commit: str

    @property
    def label(self) -> str:
        return f"{self.version}+{self.commit}"

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


def _package_version() -> str:
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return UNKNOWN


def _git_short_sha() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip() or UNKNOWN
    except (FileNotFoundError, subprocess.CalledProcessError):
        return UNKNOWN


@functools.cache
def get_build_info() -> BuildInfo:
    """Resolve once per process; call ``get_build_info.cache_clear()`` after changing the environment."""
    return BuildInfo(
        version=os.environ.get("LOTO_BUILD_VERSION") or _package_version(),
        commit=os.environ.get("LOTO_BUILD_COMMIT") or _git_short_sha(),
    )
