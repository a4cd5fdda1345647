"""
Browser automation data models.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any


DEFAULT_BLOCK_DOMAINS = [
    "google-analytics",
    "gtm.js",
    "doubleclick",
    "facebook.net",
    "hotjar",
    "optimizely",
]

HEAVY_RESOURCE_TYPES = {"image", "media", "font"}

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class BrowserSessionStatus(Enum):
    STARTING = "starting"
    READY = "ready"
    NAVIGATING = "navigating"
    ERROR = "error"
    CLOSED = "closed"


class RouteDecision(Enum):
    CONTINUE = "continue"
    ABORT = "abort"
    FULFILL = "fulfill"


@dataclass
class BrowserSessionConfig:
    """Configuration for a browser session."""
    headless: bool = True
    viewport_width: int = 1366
    viewport_height: int = 900
    storage_state_path: Optional[str] = None
    block_heavy: bool = False
    extra_headers: Dict[str, str] = field(default_factory=dict)
    extra_block_domains: List[str] = field(default_factory=list)
    short_circuit_globs: List[str] = field(default_factory=list)
    locale: str = "en-US"
    timezone_id: str = "America/Sao_Paulo"
    user_agent: str = DEFAULT_USER_AGENT
    timeout_ms: int = 30000
    record_console: bool = True
    record_network: bool = False

    @property
    def viewport(self) -> Optional[Dict[str, int]]:
        # A headful window is maximized, so the viewport follows the window.
        if not self.headless:
            return None
        return {"width": self.viewport_width, "height": self.viewport_height}

    @property
    def needs_routing(self) -> bool:
        return bool(
            self.block_heavy
            or self.extra_block_domains
            or self.short_circuit_globs
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headless": self.headless,
            "viewport_width": self.viewport_width,
            "viewport_height": self.viewport_height,
            "storage_state_path": self.storage_state_path,
            "block_heavy": self.block_heavy,
            "extra_headers": dict(self.extra_headers),
            "extra_block_domains": list(self.extra_block_domains),
            "short_circuit_globs": list(self.short_circuit_globs),
            "locale": self.locale,
            "timezone_id": self.timezone_id,
            "user_agent": self.user_agent,
            "timeout_ms": self.timeout_ms,
            "record_console": self.record_console,
            "record_network": self.record_network,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrowserSessionConfig":
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def optimized(cls, headless: bool = True, storage_state_path: Optional[str] = None) -> "BrowserSessionConfig":
        """Lean profile for quick page reads: no images, fonts or trackers."""
        return cls(
            headless=headless,
            storage_state_path=storage_state_path,
            block_heavy=True,
            extra_headers={"Save-Data": "on"},
        )


def match_glob(url: str, glob: str) -> bool:
    """Anchored glob match where only '*' is special."""
    pattern = "^" + ".*".join(re.escape(part) for part in glob.split("*")) + "$"
    return re.match(pattern, url) is not None


def route_decision(url: str, resource_type: str, config: BrowserSessionConfig) -> RouteDecision:
    """
    Decide how the context route handler treats a request. The handler is
    only installed when ``needs_routing``; analytics domains are then always
    aborted.
    """
    if config.short_circuit_globs and any(match_glob(url, g) for g in config.short_circuit_globs):
        return RouteDecision.FULFILL
    if config.block_heavy and resource_type in HEAVY_RESOURCE_TYPES:
        return RouteDecision.ABORT
    if any(d in url for d in DEFAULT_BLOCK_DOMAINS + list(config.extra_block_domains)):
        return RouteDecision.ABORT
    return RouteDecision.CONTINUE


@dataclass
class ConsoleLogEntry:
    """A browser console log entry."""
    level: str  # log, warning, error, info, debug
    text: str
    url: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "text": self.text,
            "url": self.url,
            "timestamp": self.timestamp,
        }


@dataclass
class NetworkLogEntry:
    """A browser network request/response entry."""
    method: str
    url: str
    status: int = 0
    resource_type: str = ""
    failed: bool = False
    failure_text: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "url": self.url,
            "status": self.status,
            "resource_type": self.resource_type,
            "failed": self.failed,
            "failure_text": self.failure_text,
            "timestamp": self.timestamp,
        }


@dataclass
class ScreenshotRecord:
    """Record of a debug screenshot."""
    id: str
    identifier: str
    description: str
    url: str
    file_path: str
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "description": self.description,
            "url": self.url,
            "file_path": self.file_path,
            "created_at": self.created_at,
        }


@dataclass
class BrowserSession:
    """A browser session with state tracking."""
    id: str
    name: str
    config: BrowserSessionConfig
    status: BrowserSessionStatus = BrowserSessionStatus.STARTING
    current_url: str = ""
    console_logs: List[ConsoleLogEntry] = field(default_factory=list)
    network_logs: List[NetworkLogEntry] = field(default_factory=list)
    screenshots: List[ScreenshotRecord] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    _max_console_logs: int = 500
    _max_network_logs: int = 500

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "config": self.config.to_dict(),
            "status": self.status.value,
            "current_url": self.current_url,
            "console_log_count": len(self.console_logs),
            "network_log_count": len(self.network_logs),
            "screenshot_count": len(self.screenshots),
            "created_at": self.created_at,
        }

    def add_console_log(self, entry: ConsoleLogEntry):
        self.console_logs.append(entry)
        if len(self.console_logs) > self._max_console_logs:
            self.console_logs = self.console_logs[-self._max_console_logs:]

    def add_network_log(self, entry: NetworkLogEntry):
        self.network_logs.append(entry)
        if len(self.network_logs) > self._max_network_logs:
            self.network_logs = self.network_logs[-self._max_network_logs:]
