"""Typed views over TeamCity REST responses."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _require_mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"Expected an object for {what}, got {type(data).__name__}")
    return data


@dataclass
class TeamCityBuild:
    id: int
    build_number: str
    finish_date: Optional[str] = None
    artifact_count: Optional[int] = None
    build_type_id: Optional[str] = None
    status: Optional[str] = None
    branch_name: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "TeamCityBuild":
        data = _require_mapping(data, "build")
        try:
            build_id = int(data["id"])
            number = data["number"]
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed build entry: {exc}") from exc
        if not isinstance(number, str):
            raise ValueError("Build number must be a string")
        artifacts = data.get("artifacts")
        return cls(
            id=build_id,
            build_number=number,
            finish_date=data.get("finishDate"),
            artifact_count=artifacts.get("count") if isinstance(artifacts, dict) else None,
            build_type_id=data.get("buildTypeId"),
            status=data.get("status"),
            branch_name=data.get("branchName"),
        )


@dataclass
class TeamCityBuilds:
    """Body of ``/app/rest/builds``."""
    count: int
    builds: List[TeamCityBuild] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> "TeamCityBuilds":
        data = _require_mapping(data, "builds")
        raw = data.get("build", [])
        if not isinstance(raw, list):
            raise ValueError("Expected an array for 'build'")
        return cls(
            count=int(data.get("count", len(raw))),
            builds=[TeamCityBuild.from_json(b) for b in raw],
        )


@dataclass
class TeamCityBranch:
    """A branch with its latest successful build(s); the ``builds`` wrapper is unwrapped."""
    name: str
    builds: List[TeamCityBuild] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> "TeamCityBranch":
        data = _require_mapping(data, "branch")
        name = data.get("name")
        if not isinstance(name, str):
            raise ValueError("Branch without a name")
        wrapper = data.get("builds") or {}
        wrapper = _require_mapping(wrapper, "builds")
        raw = wrapper.get("build", [])
        if not isinstance(raw, list):
            raise ValueError("Expected an array for 'builds.build'")
        return cls(name=name, builds=[TeamCityBuild.from_json(b) for b in raw])


def parse_branches(data: Any) -> List[TeamCityBranch]:
    """Body of ``/app/rest/buildTypes/id:X/branches``."""
    data = _require_mapping(data, "branches root")
    raw = data.get("branch", [])
    if not isinstance(raw, list):
        raise ValueError("Expected an array for 'branch'")
    return [TeamCityBranch.from_json(b) for b in raw]
