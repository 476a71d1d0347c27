"""Runtime configuration.

Defaults target the DFS (Germany) AIXM 5.1 datasets. Every field can be
overridden from the environment (a ``.env`` file in the working directory
is honoured) or by the command line.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

DFS_INDEX_URL = "https://aip.dfs.de/datasets/rest/"
DEFAULT_DATASETS = (
    "ED AirportHeliport",
    "ED Navaids",
    "ED Routes",
    "ED Waypoints",
    "ED Airspace",
)
DEFAULT_RELEASE_TYPE = "AIXM 5.1"
DEFAULT_USER_AGENT = "AIRAC-Updater/1.0"

ENV_PREFIX = "AIRAC_UPDATER_"


def default_cache_dir() -> Path:
    base = os.environ.get("XDG_CACHE_HOME")
    return Path(base) / "airac-updater" if base else Path.home() / ".cache" / "airac-updater"


class UpdaterSettings(BaseModel):
    """Settings shared by the fetcher and the orchestrator."""

    cache_dir: Path = Field(default_factory=default_cache_dir)
    index_url: str = DFS_INDEX_URL
    datasets: tuple[str, ...] = DEFAULT_DATASETS
    release_type: str = DEFAULT_RELEASE_TYPE
    user_agent: str = DEFAULT_USER_AGENT
    concurrency: int = Field(default_factory=lambda: os.cpu_count() or 4, ge=1)
    request_timeout: float = Field(default=60.0, gt=0)
    retry_attempts: int = Field(default=4, ge=1)
    retry_backoff: float = Field(default=1.0, ge=0, description="Exponential backoff multiplier (s)")
    retry_max_wait: float = Field(default=30.0, ge=0)

    @classmethod
    def from_env(cls, **overrides) -> UpdaterSettings:
        """Build settings from ``AIRAC_UPDATER_*`` variables, then apply overrides.

        ``None`` overrides are ignored so CLI flags that were not given
        keep the environment value.
        """
        load_dotenv(find_dotenv(usecwd=True))
        values: dict = {}
        env = {
            "cache_dir": "CACHE_DIR",
            "index_url": "INDEX_URL",
            "release_type": "RELEASE_TYPE",
            "user_agent": "USER_AGENT",
            "concurrency": "CONCURRENCY",
            "request_timeout": "TIMEOUT",
            "retry_attempts": "RETRIES",
            "retry_backoff": "BACKOFF",
        }
        for field_name, suffix in env.items():
            raw = os.environ.get(ENV_PREFIX + suffix, "").strip()
            if raw:
                values[field_name] = raw

        datasets = os.environ.get(ENV_PREFIX + "DATASETS", "").strip()
        if datasets:
            values["datasets"] = tuple(d.strip() for d in datasets.split(",") if d.strip())

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
