"""Endpoint and logging configuration.

The sequencer's WebSocket address is looked up in order:

1. ``WEBSOCKET_URL`` environment variable (``.env`` is loaded first)
2. ``websocketUrl`` in ``config.json`` in the working directory
3. the address the sequencer app wrote to its ``app_log.txt``
4. the first non-loopback IPv4 address of this machine, port 8765
5. ``ws://localhost:8765``
"""

from __future__ import annotations

import json
import logging
import os
import re
import socket
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8765
DEFAULT_URL = f"ws://localhost:{DEFAULT_PORT}"
CONFIG_FILE = "config.json"
APP_LOG_FILE = "app_log.txt"
SEQUENCER_DIR = "mGB-MIDI-Sequencer"

# The sequencer app logs its server address in Japanese
APP_LOG_RE = re.compile(r"WebSocketサーバー: (ws://[0-9.]+:[0-9]+)")


def load_environment() -> None:
    """Load variables from a ``.env`` file without overriding the environment."""
    load_dotenv()


def log_level(environ: Mapping[str, str] | None = None) -> int:
    """Logging level from ``MGB_LOG_LEVEL`` (default INFO)."""
    environ = os.environ if environ is None else environ
    name = environ.get("MGB_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def url_from_config(cwd: Path) -> str | None:
    path = cwd / CONFIG_FILE
    if not path.exists():
        return None
    try:
        config = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error("Error reading %s: %s", path, e)
        return None
    url = config.get("websocketUrl") if isinstance(config, dict) else None
    return url or None


def app_log_paths(cwd: Path) -> list[Path]:
    return [
        cwd / APP_LOG_FILE,
        cwd.parent / APP_LOG_FILE,
        cwd.parent / SEQUENCER_DIR / APP_LOG_FILE,
    ]


def url_from_app_log(cwd: Path) -> str | None:
    for path in app_log_paths(cwd):
        if not path.exists():
            continue
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.error("Error reading %s: %s", path, e)
            continue
        match = APP_LOG_RE.search(content)
        if match:
            return match.group(1)
    return None


def local_ipv4_addresses() -> list[str]:
    """Non-loopback IPv4 addresses of this host, in resolver order."""
    addresses: list[str] = []
    infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    for info in infos:
        address = info[4][0]
        if not address.startswith("127.") and address not in addresses:
            addresses.append(address)
    return addresses


def resolve_websocket_url(
    cwd: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Find the sequencer's WebSocket URL (see module docstring for order)."""
    environ = os.environ if environ is None else environ
    cwd = Path.cwd() if cwd is None else cwd

    url = environ.get("WEBSOCKET_URL")
    if url:
        logger.info("Using WebSocket address from environment variable: %s", url)
        return url

    url = url_from_config(cwd)
    if url:
        logger.info("Using WebSocket address from %s: %s", CONFIG_FILE, url)
        return url

    url = url_from_app_log(cwd)
    if url:
        logger.info("Using WebSocket address from %s: %s", APP_LOG_FILE, url)
        return url

    try:
        addresses = local_ipv4_addresses()
    except OSError as e:
        logger.error("Error detecting local IP addresses: %s", e)
        addresses = []
    if addresses:
        url = f"ws://{addresses[0]}:{DEFAULT_PORT}"
        logger.info("Using detected local IP address: %s", url)
        logger.info("Available local IPs: %s", ", ".join(addresses))
        return url

    logger.info("Using default WebSocket address: %s", DEFAULT_URL)
    return DEFAULT_URL
