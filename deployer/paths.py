# deployer/paths.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .errors import DeployerConfigError


@dataclass(frozen=True)
class ValidatedPath:
    """
    A file path that was confirmed to exist when it was built.

    Only construct through ValidatedPath.file(); holding one means the
    check already passed. `raw` is the candidate exactly as written in
    the config.
    """

    raw: str
    path: Path
    resolved: Path

    @classmethod
    def file(cls, base: Path | None, candidate: str | Path) -> ValidatedPath:
        candidate_path = Path(candidate)
        resolved = candidate_path if base is None else Path(base) / candidate_path

        if not resolved.exists():
            raise DeployerConfigError("path does not exist", str(resolved))
        if not resolved.is_file():
            raise DeployerConfigError("path is not a file", str(resolved))
        return cls(raw=str(candidate), path=candidate_path, resolved=resolved)

    def __str__(self) -> str:
        return self.raw
