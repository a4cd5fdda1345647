"""
Runtime settings for wfpilot.

Everything is driven by environment variables so the same install can run
headful on a workstation and headless on a server:

    WF_HEADLESS_DEFAULT           default headless mode (true)
    WF_FORCE_VISIBLE              force a visible window, beats any override (false)
    WF_STATE_FILE                 Playwright storage state of a logged-in session
    WF_DATA_DIR                   job store, debug screenshots, temp upload copies
    WF_TEAMS_FILE                 team roster JSON
    WF_WORKFRONT_HOST             direct Workfront host, e.g. https://acme.my.workfront.adobe.com
    WF_FOLDER_ATTEMPTS            folder lookup rounds (4)
    WF_FOLDER_DELAY_MS            delay between folder rounds (900)
    WF_DOC_ATTEMPTS               document lookup rounds (8)
    WF_DOC_DELAY_MS               delay between document rounds (700)
    WF_MIN_DELAY_AFTER_UPLOAD_MS  settle time after an upload step (8000)
    WF_DELAY_PER_FILE_MS          extra settle time per uploaded file (1200)
    WF_MAX_DELAY_AFTER_UPLOAD_MS  settle time cap (20000)
"""
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import SessionNotFoundError
from .logging_config import get_logger

logger = get_logger("wfpilot.config")

TRUE_VALUES = ("true", "1", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid integer {name}={raw!r}, using {default}")
        return default


@dataclass
class Settings:
    headless_default: bool = True
    force_visible: bool = False
    state_file: Path = field(default_factory=lambda: Path.cwd() / "wf_state.json")
    data_dir: Path = field(default_factory=lambda: Path.home() / ".wfpilot")
    teams_file: Optional[Path] = None
    workfront_host: str = ""
    folder_attempts: int = 4
    folder_delay_ms: int = 900
    doc_attempts: int = 8
    doc_delay_ms: int = 700
    min_delay_after_upload_ms: int = 8000
    delay_per_file_ms: int = 1200
    max_delay_after_upload_ms: int = 20000

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = Path(os.environ.get("WF_DATA_DIR") or Path.home() / ".wfpilot").expanduser()
        state_file = Path(os.environ.get("WF_STATE_FILE") or Path.cwd() / "wf_state.json").expanduser()
        teams_env = os.environ.get("WF_TEAMS_FILE")
        teams_file = Path(teams_env).expanduser() if teams_env else data_dir / "teams.json"
        return cls(
            headless_default=_env_bool("WF_HEADLESS_DEFAULT", True),
            force_visible=_env_bool("WF_FORCE_VISIBLE", False),
            state_file=state_file,
            data_dir=data_dir,
            teams_file=teams_file,
            workfront_host=(os.environ.get("WF_WORKFRONT_HOST") or "").rstrip("/"),
            folder_attempts=max(1, _env_int("WF_FOLDER_ATTEMPTS", 4)),
            folder_delay_ms=_env_int("WF_FOLDER_DELAY_MS", 900),
            doc_attempts=max(1, _env_int("WF_DOC_ATTEMPTS", 8)),
            doc_delay_ms=_env_int("WF_DOC_DELAY_MS", 700),
            min_delay_after_upload_ms=_env_int("WF_MIN_DELAY_AFTER_UPLOAD_MS", 8000),
            delay_per_file_ms=_env_int("WF_DELAY_PER_FILE_MS", 1200),
            max_delay_after_upload_ms=_env_int("WF_MAX_DELAY_AFTER_UPLOAD_MS", 20000),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = str(value) if isinstance(value, Path) else value
        return out

    @property
    def screenshots_dir(self) -> Path:
        return self.data_dir / "screenshots"

    @property
    def upload_tmp_dir(self) -> Path:
        return self.data_dir / "tmp_uploads"

    @property
    def jobs_file(self) -> Path:
        return self.data_dir / "upload_jobs.json"

    def resolve_headless(self, override: Any = None, allow_override: bool = False) -> bool:
        """
        Resolve the headless flag for a run.

        WF_FORCE_VISIBLE always wins. An explicit bool (or "true"/"false")
        override is honoured only when allow_override is set.
        """
        if self.force_visible:
            return False
        if allow_override:
            if isinstance(override, bool):
                return override
            if isinstance(override, str):
                value = override.strip().lower()
                if value == "true":
                    return True
                if value == "false":
                    return False
        return self.headless_default

    def ensure_state_file(self) -> Path:
        """Return the storage-state path, raising if no login was saved."""
        if not self.state_file.exists():
            raise SessionNotFoundError(str(self.state_file))
        return self.state_file

    def post_upload_delay_ms(self, file_count: int) -> int:
        planned = self.min_delay_after_upload_ms + file_count * self.delay_per_file_ms
        return min(planned, self.max_delay_after_upload_ms)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.debug(
            f"WF_HEADLESS_DEFAULT={os.environ.get('WF_HEADLESS_DEFAULT', '(unset)')} "
            f"WF_FORCE_VISIBLE={os.environ.get('WF_FORCE_VISIBLE', '(unset)')} "
            f"resolved={_settings.resolve_headless()}"
        )
    return _settings


def reload_settings() -> Settings:
    """Re-read the environment (used by tests and the CLI after overrides)."""
    global _settings
    _settings = None
    return get_settings()
