"""
Team rosters and comment templates.

Teams are read from a JSON file (``WF_TEAMS_FILE``) shaped like::

    {
      "design": {
        "members": [
          {"name": "Ana Souza", "email": "ana.souza@example.com", "role": "MANAGE"},
          {"name": "Leo Lima", "email": "leo.lima@example.com", "role": "VIEW"}
        ]
      }
    }

Members are who documents get shared with and who is mentioned on
asset-release and final-material comments. Approval comments mention
nobody.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import get_settings
from .logging_config import get_logger

logger = get_logger("wfpilot.teams")

PERMISSION_MANAGE = "MANAGE"
PERMISSION_VIEW = "VIEW"


class CommentType(str, Enum):
    ASSET_RELEASE = "assetRelease"
    FINAL_MATERIALS = "finalMaterials"
    APPROVAL = "approval"


COMMENT_BODIES = {
    CommentType.ASSET_RELEASE: "here is the folder with the final assets for this task.",
    CommentType.FINAL_MATERIALS: "here are the final materials for this task.",
    CommentType.APPROVAL: "for your approval.",
}

# Comment types that @mention every team member.
MENTIONING_TYPES = {CommentType.ASSET_RELEASE, CommentType.FINAL_MATERIALS}


def normalize_comment_type(raw: Optional[str]) -> CommentType:
    """Map loose input ("FinalMaterials", "approval", None) to a CommentType."""
    if isinstance(raw, CommentType):
        return raw
    if not raw:
        return CommentType.ASSET_RELEASE
    key = str(raw).replace("_", "").replace("-", "").lower()
    for comment_type in CommentType:
        if comment_type.value.lower() == key:
            return comment_type
    return CommentType.ASSET_RELEASE


@dataclass
class TeamMember:
    name: str
    email: str
    role: str = PERMISSION_MANAGE
    user_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "email": self.email, "role": self.role, "user_id": self.user_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMember":
        role = str(data.get("role", PERMISSION_MANAGE)).upper()
        return cls(
            name=data["name"],
            email=data["email"],
            role=PERMISSION_VIEW if role == PERMISSION_VIEW else PERMISSION_MANAGE,
            user_id=data.get("user_id", ""),
        )


@dataclass
class Team:
    key: str
    members: List[TeamMember] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "members": [m.to_dict() for m in self.members],
        }

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "Team":
        return cls(
            key=key,
            members=[TeamMember.from_dict(m) for m in data.get("members", [])],
        )


DEFAULT_TEAMS = {
    "test": Team(
        key="test",
        members=[TeamMember(name="Test User", email="test.user@example.com")],
    ),
}


class TeamDirectory:
    """Lookup of teams by key, loaded from JSON with a built-in test team."""

    def __init__(self, teams: Optional[Dict[str, Team]] = None):
        self._teams: Dict[str, Team] = dict(teams) if teams else dict(DEFAULT_TEAMS)

    @classmethod
    def load(cls, path: Optional[Path]) -> "TeamDirectory":
        if path is None or not Path(path).exists():
            logger.debug(f"No teams file at {path}, using built-in test team")
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"Teams file {path} must contain a JSON object")
        teams = {key: Team.from_dict(key, data) for key, data in raw.items()}
        logger.info(f"Loaded {len(teams)} team(s) from {path}")
        return cls(teams)

    def keys(self) -> List[str]:
        return sorted(self._teams)

    def get(self, key: str) -> Team:
        team = self._teams.get(key)
        if team is None:
            raise ValueError(f"Unknown team: {key}. Available teams: {', '.join(self.keys())}")
        return team

    def all(self) -> List[Team]:
        return [self._teams[k] for k in self.keys()]


@dataclass
class CommentDraft:
    comment_type: CommentType
    mentions: List[str]
    body: str

    @property
    def text(self) -> str:
        if not self.mentions:
            return self.body[:1].upper() + self.body[1:]
        return " ".join(f"@{name}" for name in self.mentions) + ", " + self.body

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comment_type": self.comment_type.value,
            "mentions": list(self.mentions),
            "body": self.body,
            "text": self.text,
        }


def build_comment(comment_type: Any, team: Team) -> CommentDraft:
    comment_type = normalize_comment_type(comment_type)
    mentions = [m.name for m in team.members] if comment_type in MENTIONING_TYPES else []
    return CommentDraft(comment_type=comment_type, mentions=mentions, body=COMMENT_BODIES[comment_type])


_directory: Optional[TeamDirectory] = None


def get_team_directory() -> TeamDirectory:
    global _directory
    if _directory is None:
        _directory = TeamDirectory.load(get_settings().teams_file)
    return _directory


def set_team_directory(directory: Optional[TeamDirectory]):
    global _directory
    _directory = directory
