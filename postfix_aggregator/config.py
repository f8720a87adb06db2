"""Configuration loaded from a YAML file with environment overrides."""

import logging
import os
from dataclasses import dataclass

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/postfix-aggregator.yml"


@dataclass(frozen=True)
class Config:
    log_file: str = "/var/log/maillog"
    spool_dir: str = "/var/spool/log-ship"
    data_dir: str = "/var/lib/postfix-aggregator"
    collection: str = "postfix-orphan"
    batch_limit: int = 1024
    search_size: int = 3072
    retry_delay: float = 15.0
    settle_delay: float = 15.0
    poll_interval: float = 2.0
    service_family: str = "postfix"
    metrics_file: str = ""
    log_level: str = "INFO"

    @property
    def bookmark_file(self) -> str:
        return os.path.join(self.spool_dir, ".bookmark", "position.json")

    @classmethod
    def from_dict(cls, d: dict) -> "Config":
        reader = d.get("reader", {}) or {}
        store = d.get("store", {}) or {}
        main = d.get("main", {}) or {}

        batch_limit = int(os.environ.get("BATCH_LIMIT", store.get("batch", cls.batch_limit)))
        return cls(
            log_file=os.environ.get("LOG_FILE", reader.get("file", cls.log_file)),
            spool_dir=main.get("spool", cls.spool_dir),
            data_dir=os.environ.get("DATA_DIR", store.get("data_dir", cls.data_dir)),
            collection=store.get("collection", cls.collection),
            batch_limit=batch_limit,
            search_size=int(store.get("search_size", batch_limit * 3)),
            retry_delay=float(os.environ.get("RETRY_DELAY", main.get("retry_delay", cls.retry_delay))),
            settle_delay=float(os.environ.get("SETTLE_DELAY", main.get("settle_delay", cls.settle_delay))),
            poll_interval=float(reader.get("poll_interval", cls.poll_interval)),
            service_family=main.get("service_family", cls.service_family),
            metrics_file=main.get("metrics_file", cls.metrics_file),
            log_level=os.environ.get("LOG_LEVEL", main.get("log_level", cls.log_level)),
        )


def load_yaml(path: str | None = None) -> dict:
    """Load the YAML config. ``CONFIG_PATH`` overrides the default location.

    A missing file yields an empty dict so defaults apply.
    """
    path = path or os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded YAML config from %s", path)
        return data
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}


def load_config(path: str | None = None) -> Config:
    return Config.from_dict(load_yaml(path))


def ensure_spool_dir(spool_dir: str) -> None:
    """Create the spool dir (and its parent) if needed and check it is writable."""
    if not os.path.isdir(spool_dir):
        logger.info("Creating spool dir %s", spool_dir)
        os.makedirs(spool_dir, exist_ok=True)
    if not os.access(spool_dir, os.W_OK):
        raise PermissionError(f"spool dir is not writable: {spool_dir}")
