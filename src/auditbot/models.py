"""Repository and push event models shared by triggers, stores and steps."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RepositoryHandle:
    """Identifies one remediable repository."""

    owner: str
    name: str
    repo_id: str
    owner_id: str
    default_branch: str = "main"

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class Author:
    login: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class Push:
    """A push to ``branch`` whose head commit is ``sha``."""

    repo: RepositoryHandle
    branch: str
    sha: Optional[str] = None
    author: Author = Author()

    @property
    def is_default_branch(self) -> bool:
        return self.branch == self.repo.default_branch
