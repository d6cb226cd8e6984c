"""Constants used across the node-fingerprint package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "node-fingerprint"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path("/etc") / APP_NAME / DEFAULT_CONFIG_FILENAME
DEFAULT_DATA_DIR = Path("/var/lib") / APP_NAME

DEFAULT_LOG_PATH = Path("/var/log") / APP_NAME / f"{APP_NAME}.log"

DEFAULT_DATACENTER = "dc1"

# Link-local metadata services
DEFAULT_GCE_URL = "http://169.254.169.254/computeMetadata/v1/instance/"
DEFAULT_AWS_URL = "http://169.254.169.254/latest/"

# Environment variables that redirect metadata services to substitute servers
GCE_URL_ENV = "GCE_ENV_URL"
AWS_URL_ENV = "AWS_ENV_URL"

DEFAULT_METADATA_TIMEOUT_SECONDS = 2.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 10.0
DEFAULT_STARTUP_DEADLINE_SECONDS = 30.0
DEFAULT_PERIODIC_INTERVAL_SECONDS = 15.0
