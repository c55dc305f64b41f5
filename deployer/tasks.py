# deployer/tasks.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import DeployerConfigError

logger = logging.getLogger(__name__)

# GNU make's lookup order
MAKEFILE_NAMES = ("GNUmakefile", "makefile", "Makefile")

# "target [target ...]:" and "target::", but not ":=" / "::=" assignments
_TARGET_RE = re.compile(r"^([^\t#:=][^#:=]*?)\s*::?(?![:=])")
# "include a.mk", "-include b.mk", "sinclude c.mk"
_INCLUDE_RE = re.compile(r"^\s*(?:-|s)?include\s+(.+)$")
_GLOB_CHARS = ("*", "?", "[")
# "$(VAR)", "${VAR}", "$V"; may contain spaces
_VAR_REF_RE = re.compile(r"\$(?:\([^)]*\)|\{[^}]*\}|.)")


def find_makefile(project_root: Path) -> Path | None:
    for name in MAKEFILE_NAMES:
        candidate = project_root / name
        if candidate.is_file():
            return candidate
    return None


def parse_make_targets(text: str) -> set[str]:
    """
    Collect explicit target names from Makefile text.

    Skips recipe lines, special targets (.PHONY, .DEFAULT, ...),
    pattern rules and targets built from variables.
    """
    targets: set[str] = set()
    for line in text.splitlines():
        if line.startswith("\t"):
            continue
        match = _TARGET_RE.match(line)
        if not match:
            continue
        for name in match.group(1).split():
            if name.startswith(".") or "%" in name or "$" in name:
                continue
            targets.add(name)
    return targets


def parse_make_includes(text: str) -> list[str]:
    """
    Collect file names from include directives, in order.

    Names built from variables ("$(wildcard ...)", "$(DIR)/x.mk") are skipped.
    """
    names: list[str] = []
    for line in text.splitlines():
        if line.startswith("\t"):
            continue
        match = _INCLUDE_RE.match(line)
        if not match:
            continue
        directive = _VAR_REF_RE.sub("$", match.group(1).split("#", 1)[0])
        for name in directive.split():
            if "$" in name:
                continue
            names.append(name)
    return names


def _include_paths(project_root: Path, name: str) -> list[Path]:
    candidate = Path(name)
    if not candidate.is_absolute() and any(c in name for c in _GLOB_CHARS):
        return sorted(p for p in project_root.glob(name) if p.is_file())
    path = candidate if candidate.is_absolute() else project_root / candidate
    if not path.is_file():
        # make itself may generate it; nothing to scan yet
        logger.debug("skipping missing include %s", path)
        return []
    return [path]


def collect_make_targets(project_root: Path, makefile: Path) -> set[str]:
    """
    Targets defined by a Makefile and every file it includes.

    Included names resolve against the project root, the directory make
    runs in.
    """
    targets: set[str] = set()
    seen: set[Path] = set()
    pending = [makefile]
    while pending:
        path = pending.pop(0)
        key = path.resolve()
        if key in seen:
            continue
        seen.add(key)

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DeployerConfigError("could not read Makefile", str(path)) from e

        targets |= parse_make_targets(text)
        for name in parse_make_includes(text):
            pending.extend(_include_paths(project_root, name))
    return targets


@dataclass(frozen=True)
class MakeTask:
    """A make target known to be defined in the project's Makefile."""

    name: str
    makefile: Path

    @classmethod
    def new(cls, project_root: Path, name: str) -> MakeTask:
        makefile = find_makefile(project_root)
        if makefile is None:
            raise DeployerConfigError("no Makefile found in project root", str(project_root))

        if name not in collect_make_targets(project_root, makefile):
            raise DeployerConfigError(f"task is not defined in {makefile.name}", name)

        logger.debug("resolved make task %r in %s", name, makefile)
        return cls(name=name, makefile=makefile)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class AnsibleTask:
    """An ansible-playbook run: one playbook against one inventory."""

    playbook: str
    inventory: str
    project_root: Path

    @classmethod
    def new(cls, playbook: str, inventory: str, project_root: Path) -> AnsibleTask:
        return cls(playbook=playbook, inventory=inventory, project_root=project_root)

    def __str__(self) -> str:
        return f"{self.playbook} -i {self.inventory}"
