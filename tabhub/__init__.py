"""
tabhub - Tab State Observation for Extension Hosts

Keeps an authoritative snapshot of every browser tab, detects which
observable fields changed on each lifecycle signal, and fans chrome.tabs /
chrome.webNavigation events out to any number of extension hosts. Hosts
read and mutate tabs through the chrome.tabs command set.

Quick Start:
    # Serve hosts over HTTP/SSE against a running Chrome
    tabhub --chrome localhost:9222

    # As Python library
    from tabhub import ExtensionContext, MailboxHost

    context = ExtensionContext()
    host = MailboxHost()
    context.observe_extension_host(host)
    context.observe_tab(tab)          # any TabHandle
    context.invoke("tabs.query", host, {"active": True})
"""

from .tab import (
    TAB_ID_NONE,
    WINDOW_ID_CURRENT,
    WINDOW_ID_NONE,
    UPDATE_FIELDS,
    MutedInfo,
    TabHandle,
    TabSnapshot,
    TabStatus,
    WindowHandle,
    build_snapshot,
)
from .registry import TabRegistry, TabSnapshotCache
from .detector import ChangeDetector
from .navigation import NavigationObserver
from .broadcast import EventBroadcaster, ExtensionHost, MailboxHost
from .commands import COMMAND_CHANNELS, CommandSurface, validate_url
from .subscriptions import SubscriptionTable
from .environment import HostEnvironment, StaticEnvironment, StaticWindow
from .context import ExtensionContext, create_context
from .loop import ControlLoop
from .config import Config
from .auth import TokenAuth
from .errors import CommandTimeout, DeliveryFailure, InvalidInput, NotFound, TabHubError
from .browser import CDP, CDPEnvironment, CDPTab, CDPWindow
from .server import HostGateway, create_app, run

__version__ = "0.3.0"
__all__ = [
    # Model
    "TAB_ID_NONE",
    "WINDOW_ID_NONE",
    "WINDOW_ID_CURRENT",
    "UPDATE_FIELDS",
    "MutedInfo",
    "TabHandle",
    "TabSnapshot",
    "TabStatus",
    "WindowHandle",
    "build_snapshot",
    # Core
    "TabRegistry",
    "TabSnapshotCache",
    "ChangeDetector",
    "NavigationObserver",
    "EventBroadcaster",
    "ExtensionHost",
    "MailboxHost",
    "CommandSurface",
    "COMMAND_CHANNELS",
    "validate_url",
    "SubscriptionTable",
    # Context
    "HostEnvironment",
    "StaticEnvironment",
    "StaticWindow",
    "ExtensionContext",
    "create_context",
    "ControlLoop",
    "Config",
    # Errors
    "TabHubError",
    "NotFound",
    "InvalidInput",
    "DeliveryFailure",
    "CommandTimeout",
    # Chrome
    "CDP",
    "CDPEnvironment",
    "CDPTab",
    "CDPWindow",
    # Server
    "HostGateway",
    "TokenAuth",
    "create_app",
    "run",
]
