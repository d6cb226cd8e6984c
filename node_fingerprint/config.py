"""Configuration loader for node-fingerprint."""

from __future__ import annotations

import os
from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from . import constants


@dataclass(slots=True)
class AgentSection:
    node_id: Optional[str] = None
    node_name: Optional[str] = None
    datacenter: str = constants.DEFAULT_DATACENTER
    node_class: str = ""
    data_dir: Path = constants.DEFAULT_DATA_DIR


@dataclass(slots=True)
class FingerprintConfig:
    allowlist: List[str] = field(default_factory=list)
    denylist: List[str] = field(default_factory=list)
    probe_timeout_seconds: float = constants.DEFAULT_PROBE_TIMEOUT_SECONDS
    startup_deadline_seconds: float = constants.DEFAULT_STARTUP_DEADLINE_SECONDS
    network_interface: Optional[str] = None
    network_speed_mbits: Optional[int] = None  # Used when the OS reports no link speed
    network_refresh_seconds: float = constants.DEFAULT_PERIODIC_INTERVAL_SECONDS
    cgroup_refresh_seconds: float = constants.DEFAULT_PERIODIC_INTERVAL_SECONDS
    cpu_total_compute: Optional[int] = None  # MHz override for hosts without cpufreq


@dataclass(slots=True)
class MetadataConfig:
    gce_url: str = constants.DEFAULT_GCE_URL
    aws_url: str = constants.DEFAULT_AWS_URL
    request_timeout_seconds: float = constants.DEFAULT_METADATA_TIMEOUT_SECONDS


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class AgentConfig:
    agent: AgentSection
    fingerprint: FingerprintConfig
    metadata: MetadataConfig
    logging: LoggingConfig
    meta: Dict[str, str]
    raw: ConfigParser
    path: Path


def _parse_list(value: str, *, default: Iterable[str] = ()) -> List[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _optional_int(parser: ConfigParser, section: str, option: str) -> Optional[int]:
    value = parser.get(section, option, fallback="").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def load_config(
    path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None
) -> AgentConfig:
    """Load configuration from disk, applying defaults where necessary.

    Metadata base URLs can be redirected through ``GCE_ENV_URL`` and
    ``AWS_ENV_URL``; those variables are only consulted here.
    """

    config_path = path or constants.DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    parser = ConfigParser()
    parser.read_dict(
        {
            "agent": {
                "datacenter": constants.DEFAULT_DATACENTER,
                "node_class": "",
                "data_dir": str(constants.DEFAULT_DATA_DIR),
            },
            "fingerprint": {
                "allowlist": "",
                "denylist": "",
                "probe_timeout_seconds": str(constants.DEFAULT_PROBE_TIMEOUT_SECONDS),
                "startup_deadline_seconds": str(
                    constants.DEFAULT_STARTUP_DEADLINE_SECONDS
                ),
                "network_refresh_seconds": str(
                    constants.DEFAULT_PERIODIC_INTERVAL_SECONDS
                ),
                "cgroup_refresh_seconds": str(
                    constants.DEFAULT_PERIODIC_INTERVAL_SECONDS
                ),
            },
            "metadata": {
                "gce_url": constants.DEFAULT_GCE_URL,
                "aws_url": constants.DEFAULT_AWS_URL,
                "request_timeout_seconds": str(
                    constants.DEFAULT_METADATA_TIMEOUT_SECONDS
                ),
            },
            "meta": {},
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    agent = AgentSection(
        node_id=parser.get("agent", "node_id", fallback=None) or None,
        node_name=parser.get("agent", "node_name", fallback=None) or None,
        datacenter=parser.get("agent", "datacenter"),
        node_class=parser.get("agent", "node_class", fallback=""),
        data_dir=Path(parser.get("agent", "data_dir")).expanduser(),
    )

    fingerprint_defaults = FingerprintConfig()

    fingerprint = FingerprintConfig(
        allowlist=_parse_list(parser.get("fingerprint", "allowlist", fallback="")),
        denylist=_parse_list(parser.get("fingerprint", "denylist", fallback="")),
        probe_timeout_seconds=max(
            0.1,
            parser.getfloat(
                "fingerprint",
                "probe_timeout_seconds",
                fallback=fingerprint_defaults.probe_timeout_seconds,
            ),
        ),
        startup_deadline_seconds=max(
            0.1,
            parser.getfloat(
                "fingerprint",
                "startup_deadline_seconds",
                fallback=fingerprint_defaults.startup_deadline_seconds,
            ),
        ),
        network_interface=parser.get(
            "fingerprint", "network_interface", fallback=None
        )
        or None,
        network_speed_mbits=_optional_int(parser, "fingerprint", "network_speed_mbits"),
        network_refresh_seconds=max(
            0.0,
            parser.getfloat(
                "fingerprint",
                "network_refresh_seconds",
                fallback=fingerprint_defaults.network_refresh_seconds,
            ),
        ),
        cgroup_refresh_seconds=max(
            0.0,
            parser.getfloat(
                "fingerprint",
                "cgroup_refresh_seconds",
                fallback=fingerprint_defaults.cgroup_refresh_seconds,
            ),
        ),
        cpu_total_compute=_optional_int(parser, "fingerprint", "cpu_total_compute"),
    )

    gce_override = env.get(constants.GCE_URL_ENV)
    if gce_override:
        parser.set("metadata", "gce_url", gce_override)
    aws_override = env.get(constants.AWS_URL_ENV)
    if aws_override:
        parser.set("metadata", "aws_url", aws_override)

    metadata = MetadataConfig(
        gce_url=parser.get("metadata", "gce_url"),
        aws_url=parser.get("metadata", "aws_url"),
        request_timeout_seconds=max(
            0.1,
            parser.getfloat(
                "metadata",
                "request_timeout_seconds",
                fallback=constants.DEFAULT_METADATA_TIMEOUT_SECONDS,
            ),
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    # Section proxies fall back to [DEFAULT]; inherited keys are not node metadata
    defaults = parser.defaults()
    meta = {
        key: value for key, value in parser["meta"].items() if key not in defaults
    }

    return AgentConfig(
        agent=agent,
        fingerprint=fingerprint,
        metadata=metadata,
        logging=logging_config,
        meta=meta,
        raw=parser,
        path=config_path,
    )

