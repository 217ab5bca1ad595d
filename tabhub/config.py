"""
Runtime configuration.

Defaults live on the class so embedding code can override them before
construction; the CLI fills instances from argparse.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


DEFAULT_ALLOWED_SCHEMES: Tuple[str, ...] = (
    "http",
    "https",
    "about",
    "chrome-extension",
    "data",
    "file",
)


@dataclass
class Config:
    """Settings for the context, control loop and HTTP transport."""

    DEFAULT_PORT = 8080
    DEFAULT_CHROME_ADDRESS = "localhost:9222"
    HOME = Path.home() / ".tabhub"

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    chrome_address: str = DEFAULT_CHROME_ADDRESS
    auth: bool = True
    token: Optional[str] = None
    # Events queued per extension host before further events are dropped
    mailbox_size: int = 256
    # Seconds a command may wait on the control loop
    command_timeout: float = 10.0
    # Raise NotFound from mutating commands instead of ignoring unknown tabs
    strict_commands: bool = False
    allowed_schemes: Tuple[str, ...] = field(default=DEFAULT_ALLOWED_SCHEMES)
    log_level: str = "INFO"
