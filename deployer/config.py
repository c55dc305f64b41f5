# deployer/config.py
from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from .errors import DeployerConfigError
from .paths import ValidatedPath
from .tasks import AnsibleTask, MakeTask

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".deployer.conf"
INVALID_METHOD = "invalid value, valid values are 'ansible' and 'makefile'"
CONFIG_NOT_FOUND = "could not open deployer configuration"


class DeployMethod(Enum):
    ANSIBLE = "ansible"
    MAKEFILE = "makefile"

    @classmethod
    def parse(cls, raw: str) -> DeployMethod:
        """
        Map a config string to a method. "make" is accepted as an alias
        for "makefile" on input only.
        """
        if raw == "ansible":
            return cls.ANSIBLE
        if raw in ("makefile", "make"):
            return cls.MAKEFILE
        raise ValueError(f"unknown deploy method {raw!r}")

    def __str__(self) -> str:
        return self.value


class LookupStatus(Enum):
    MISSING = "missing"
    WRONG_TYPE = "wrong_type"
    VALUE = "value"


def _type_name(value: object) -> str:
    if value is None:
        return "null"
    return type(value).__name__


def lookup_string(section: object, key: str) -> tuple[LookupStatus, str | None]:
    """
    Read a string field from a parsed TOML table.

    Returns:
        (status, value)
    """
    if not isinstance(section, dict) or key not in section:
        return LookupStatus.MISSING, None

    value = section[key]
    if not isinstance(value, str):
        return LookupStatus.WRONG_TYPE, None

    return LookupStatus.VALUE, value


def _wrong_type_error(section: object, key: str, subject: str) -> DeployerConfigError:
    got = _type_name(section[key]) if isinstance(section, dict) else "null"
    return DeployerConfigError(f"could not read '{subject}' as string (got {got})", subject)


def _lookup_method(section: object, subject: str, fallback: DeployMethod) -> DeployMethod:
    status, value = lookup_string(section, "method")
    if status is LookupStatus.MISSING:
        return fallback
    if status is LookupStatus.WRONG_TYPE:
        raise _wrong_type_error(section, "method", subject)
    try:
        return DeployMethod.parse(value)
    except ValueError as e:
        raise DeployerConfigError(f"{INVALID_METHOD}, got {value!r}", subject) from e


def _lookup_path(section: object, key: str, subject: str, project_root: Path) -> ValidatedPath | None:
    status, value = lookup_string(section, key)
    if status is LookupStatus.MISSING:
        return None
    if status is LookupStatus.WRONG_TYPE:
        raise _wrong_type_error(section, key, subject)
    return ValidatedPath.file(project_root, value)


def _lookup_make_task(section: object, subject: str, project_root: Path) -> MakeTask | None:
    status, value = lookup_string(section, "task")
    if status is LookupStatus.MISSING:
        return None
    if status is LookupStatus.WRONG_TYPE:
        raise _wrong_type_error(section, "task", subject)
    return MakeTask.new(project_root, value)


def _lookup_plain(section: object, key: str, subject: str) -> str | None:
    status, value = lookup_string(section, key)
    if status is LookupStatus.WRONG_TYPE:
        raise _wrong_type_error(section, key, subject)
    return value


@dataclass(frozen=True)
class Defaults:
    method: DeployMethod = DeployMethod.MAKEFILE
    task: MakeTask | None = None
    playbook: ValidatedPath | None = None
    notify_url: str | None = None


@dataclass(frozen=True)
class BranchConfig:
    name: str
    method: DeployMethod
    _make_task: MakeTask | None = None
    _ansible_task: AnsibleTask | None = None
    notify_url: str | None = None

    def __post_init__(self) -> None:
        if self.method is DeployMethod.MAKEFILE:
            valid = self._make_task is not None and self._ansible_task is None
        else:
            valid = self._ansible_task is not None and self._make_task is None
        if not valid:
            raise ValueError(
                f"branch {self.name!r} must carry exactly one task matching method {self.method}"
            )

    def make_task(self) -> MakeTask | None:
        return self._make_task

    def ansible_task(self) -> AnsibleTask | None:
        return self._ansible_task


def resolve_defaults(defaults: object, project_root: Path) -> Defaults:
    """
    Resolve the [defaults] table. Every key is optional; the method
    falls back to makefile.
    """
    if not isinstance(defaults, dict):
        raise DeployerConfigError(
            f"'defaults' must be a table (got {_type_name(defaults)})", "defaults"
        )

    resolved = Defaults(
        method=_lookup_method(defaults, "defaults.method", DeployMethod.MAKEFILE),
        task=_lookup_make_task(defaults, "defaults.task", project_root),
        playbook=_lookup_path(defaults, "playbook", "defaults.playbook", project_root),
        notify_url=_lookup_plain(defaults, "notify_url", "defaults.notify_url"),
    )
    logger.debug("resolved defaults: method=%s", resolved.method)
    return resolved


def resolve_branch(name: str, table: object, defaults: Defaults, project_root: Path) -> BranchConfig:
    """
    Resolve one [branches.<name>] table against the resolved defaults.

    An ansible branch needs an inventory of its own; its playbook may come
    from [defaults]. A makefile branch needs its own task: defaults.task
    is not inherited.
    """
    if not isinstance(table, dict):
        raise DeployerConfigError("every 'branches' entry must be a table", name)

    prefix = f"branch.{name}"
    method = _lookup_method(table, f"{prefix}.method", defaults.method)
    playbook = _lookup_path(table, "playbook", f"{prefix}.playbook", project_root)
    inventory = _lookup_path(table, "inventory", f"{prefix}.inventory", project_root)

    ansible_task: AnsibleTask | None = None
    if method is DeployMethod.ANSIBLE:
        if inventory is not None and playbook is None:
            playbook = defaults.playbook
        if inventory is None or playbook is None:
            raise DeployerConfigError(
                "could not combine default and branch config to find "
                "playbook + inventory combination",
                prefix,
            )
        ansible_task = AnsibleTask.new(playbook.raw, inventory.raw, project_root)

    make_task: MakeTask | None = None
    if method is DeployMethod.MAKEFILE:
        make_task = _lookup_make_task(table, f"{prefix}.task", project_root)

    if make_task is None and ansible_task is None:
        raise DeployerConfigError(
            "cannot construct a task for branch between local config and defaults", prefix
        )

    branch = BranchConfig(
        name=name,
        method=method,
        _make_task=make_task,
        _ansible_task=ansible_task,
        notify_url=_lookup_plain(table, "notify_url", f"{prefix}.notify_url"),
    )
    logger.debug("resolved branch %r: method=%s", name, method)
    return branch


@dataclass(frozen=True)
class RepoConfig:
    project_root: Path
    default_method: DeployMethod = DeployMethod.MAKEFILE
    default_task: MakeTask | None = None
    default_playbook: ValidatedPath | None = None
    default_notify_url: str | None = None
    branches: Mapping[str, BranchConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "branches", MappingProxyType(dict(self.branches)))

    def lookup_branch(self, name: str) -> BranchConfig | None:
        return self.branches.get(name)

    def branch_names(self) -> list[str]:
        return list(self.branches)

    @classmethod
    def load(cls, project_root: Path) -> RepoConfig:
        """
        Load <project_root>/.deployer.conf and return a fully resolved RepoConfig.
        """
        path = project_root / CONFIG_FILENAME
        if not path.exists():
            raise DeployerConfigError(CONFIG_NOT_FOUND, str(path))

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DeployerConfigError("could not read file contents", str(path)) from e

        logger.debug("loading %s", path)
        return cls.from_str(text, project_root)

    @classmethod
    def from_str(cls, text: str, project_root: Path) -> RepoConfig:
        try:
            data: dict[str, Any] = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise DeployerConfigError("could not parse toml") from e

        if "defaults" not in data:
            raise DeployerConfigError("missing 'defaults' section", "defaults")
        defaults = resolve_defaults(data["defaults"], project_root)

        raw_branches = data.get("branches")
        if raw_branches is None:
            raise DeployerConfigError(
                "must configure at least one branch (missing [branches.*])", "branches.*"
            )
        if not isinstance(raw_branches, dict):
            raise DeployerConfigError(
                f"'branches' must be a table (got {_type_name(raw_branches)})", "branches"
            )
        if not raw_branches:
            raise DeployerConfigError(
                "must configure at least one branch (empty [branches])", "branches.*"
            )

        branches: dict[str, BranchConfig] = {}
        for name, table in raw_branches.items():
            branches[name] = resolve_branch(name, table, defaults, project_root)

        return cls(
            project_root=project_root,
            default_method=defaults.method,
            default_task=defaults.task,
            default_playbook=defaults.playbook,
            default_notify_url=defaults.notify_url,
            branches=branches,
        )
