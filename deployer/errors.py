# deployer/errors.py
from __future__ import annotations


class DeployerConfigError(Exception):
    """Config error in .deployer.conf or one of the files it references"""

    def __init__(self, desc: str, subject: str | None = None) -> None:
        self.desc = desc
        self.subject = subject
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.subject is None:
            return self.desc
        return f"{self.subject}: {self.desc}"
