"""GitHub API integration."""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Literal, Optional

from github import Github, GithubException
from github.CheckRun import CheckRun

from auditbot.integrations import git
from auditbot.integrations.git import Project
from auditbot.models import Author, Push, RepositoryHandle
from auditbot.status import Status, failure, success

logger = logging.getLogger(__name__)

# GitHub limits annotations per check run update request
MAX_ANNOTATIONS_PER_REQUEST = 50
MAX_SUMMARY_LENGTH = 65_000


def get_token() -> Optional[str]:
    """Resolve the GitHub credential from the environment."""
    return os.environ.get("GITHUB_TOKEN")


def get_github_client() -> Github:
    """Get authenticated GitHub client."""
    token = get_token()
    if not token:
        raise ValueError("GITHUB_TOKEN environment variable is required")
    return Github(token)


def _to_handle(repository) -> RepositoryHandle:
    return RepositoryHandle(
        owner=repository.owner.login,
        name=repository.name,
        repo_id=str(repository.id),
        owner_id=str(repository.owner.id),
        default_branch=repository.default_branch,
    )


def list_repositories(owners: Optional[list[str]] = None) -> list[RepositoryHandle]:
    """Enumerate non-archived repositories of the given orgs/users.

    Without owners, lists the repositories visible to the authenticated user.
    """
    gh = get_github_client()
    if not owners:
        sources = [gh.get_user().get_repos()]
    else:
        sources = []
        for owner in owners:
            try:
                sources.append(gh.get_organization(owner).get_repos())
            except GithubException:
                sources.append(gh.get_user(owner).get_repos())

    handles = []
    for source in sources:
        for repository in source:
            if repository.archived:
                continue
            handles.append(_to_handle(repository))
    return handles


def get_repository(slug: str) -> RepositoryHandle:
    """Fetch a repository handle by ``owner/name``."""
    gh = get_github_client()
    return _to_handle(gh.get_repo(slug))


def get_json_file(repo: RepositoryHandle, path: str, ref: Optional[str] = None) -> dict:
    """Read and decode a JSON file through the contents API.

    Raises:
        GithubException: If the file does not exist or cannot be read.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    gh = get_github_client()
    repository = gh.get_repo(repo.slug)
    if ref:
        content = repository.get_contents(path, ref=ref)
    else:
        content = repository.get_contents(path)
    return json.loads(content.decoded_content.decode("utf-8"))


def get_head_push(repo: RepositoryHandle, branch: Optional[str] = None) -> Push:
    """Describe the head commit of ``branch`` (default branch if omitted) as a push."""
    gh = get_github_client()
    repository = gh.get_repo(repo.slug)
    branch = branch or repo.default_branch
    commit = repository.get_branch(branch).commit
    git_author = commit.commit.author
    author = Author(
        login=commit.author.login if commit.author else None,
        name=git_author.name if git_author else None,
        email=git_author.email if git_author else None,
    )
    return Push(repo=repo, branch=branch, sha=commit.sha, author=author)


@dataclass
class Annotation:
    """A line-level check annotation."""

    path: str
    start_line: int
    end_line: int
    message: str
    level: Literal["notice", "warning", "failure"] = "warning"

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "annotation_level": self.level,
            "message": self.message,
        }


class Check:
    """A check run created at a commit and updated as the audit progresses."""

    def __init__(self, check_run: CheckRun, title: str):
        self.check_run = check_run
        self.title = title

    def update(
        self,
        conclusion: Literal["success", "neutral", "action_required", "failure"],
        body: str,
        annotations: Optional[list[Annotation]] = None,
    ) -> None:
        annotations = annotations or []
        summary = body[:MAX_SUMMARY_LENGTH]
        batches = [
            annotations[i : i + MAX_ANNOTATIONS_PER_REQUEST]
            for i in range(0, len(annotations), MAX_ANNOTATIONS_PER_REQUEST)
        ] or [[]]
        for batch in batches:
            output = {"title": self.title, "summary": summary}
            if batch:
                output["annotations"] = [a.to_dict() for a in batch]
            self.check_run.edit(status="completed", conclusion=conclusion, output=output)


def create_check(repo: RepositoryHandle, sha: str, name: str, title: str, body: str) -> Check:
    """Create an in-progress check run at ``sha``."""
    gh = get_github_client()
    repository = gh.get_repo(repo.slug)
    check_run = repository.create_check_run(
        name=name,
        head_sha=sha,
        status="in_progress",
        output={"title": title, "summary": body},
    )
    return Check(check_run, title)


class PullRequestResult:
    """Result of creating a pull request."""

    def __init__(
        self,
        success: bool,
        url: str | None = None,
        error: str | None = None,
        created: bool = False,
    ):
        self.success = success
        self.url = url
        self.error = error
        self.created = created


def _open_pulls(repository, owner: str, head: str, base: Optional[str] = None):
    if base:
        return list(repository.get_pulls(state="open", head=f"{owner}:{head}", base=base))
    return list(repository.get_pulls(state="open", head=f"{owner}:{head}"))


def create_or_update_pull_request(
    repo: RepositoryHandle,
    branch_name: str,
    title: str,
    body: str,
    base: str,
    labels: Optional[list[str]] = None,
) -> PullRequestResult:
    """Open a pull request for ``branch_name`` or refresh the open one.

    Args:
        repo: Target repository
        branch_name: Head branch name
        title: PR title
        body: PR body/description
        base: Base branch
        labels: Labels to add

    Returns:
        PullRequestResult with success status and URL or error
    """
    try:
        gh = get_github_client()
        repository = gh.get_repo(repo.slug)
        existing = _open_pulls(repository, repo.owner, branch_name, base)
        if existing:
            pr = existing[0]
            pr.edit(title=title, body=body)
            created = False
        else:
            pr = repository.create_pull(
                title=title,
                body=body,
                head=branch_name,
                base=base,
            )
            created = True
        if labels:
            pr.add_to_labels(*labels)
        return PullRequestResult(success=True, url=pr.html_url, created=created)
    except GithubException as e:
        error_msg = str(e)[:200] if str(e) else "Unknown error"
        return PullRequestResult(success=False, error=error_msg)


def close_pull_requests(repo: RepositoryHandle, base: str, head: str, comment: str) -> int:
    """Close open pull requests from ``head`` into ``base`` with a comment.

    Returns:
        Number of closed pull requests
    """
    gh = get_github_client()
    repository = gh.get_repo(repo.slug)
    closed = 0
    for pr in _open_pulls(repository, repo.owner, head, base):
        pr.create_issue_comment(comment)
        pr.edit(state="closed")
        try:
            repository.get_git_ref(f"heads/{head}").delete()
        except GithubException as e:
            logger.debug("Could not delete branch %s on %s: %s", head, repo.slug, e)
        closed += 1
    return closed


@dataclass
class PullRequestSpec:
    """Branch and content of a remediation pull request."""

    branch: str
    title: str
    body: str
    labels: list[str] = field(default_factory=list)


def strategy_mode(strategy: Optional[str], is_default_branch: bool) -> Optional[str]:
    """Resolve a push strategy to "pr", "commit" or None (do not push)."""
    match strategy:
        case "pr":
            return "pr"
        case "pr_default":
            return "pr" if is_default_branch else None
        case "pr_default_commit":
            return "pr" if is_default_branch else "commit"
        case "commit":
            return "commit"
        case "commit_default":
            return "commit" if is_default_branch else None
        case _:
            return None


def persist_changes(
    project: Project,
    strategy: Optional[str],
    push: Push,
    pull_request: PullRequestSpec,
    message: str,
) -> Status:
    """Commit the working tree and push it according to ``strategy``."""
    mode = strategy_mode(strategy, push.is_default_branch)
    if mode is None:
        return success(f"Not configured to push changes to {push.branch}").hidden()

    if mode == "commit":
        git.commit_all(project, message, push.author)
        git.push(project, push.branch)
        return success(f"Pushed changes to [{push.repo.slug}/{push.branch}]")

    git.checkout_branch(project, pull_request.branch)
    git.commit_all(project, message, push.author)
    git.push(project, pull_request.branch, force=True)
    result = create_or_update_pull_request(
        push.repo,
        pull_request.branch,
        pull_request.title,
        pull_request.body,
        base=push.branch,
        labels=pull_request.labels,
    )
    if not result.success:
        return failure(f"Failed to raise pull request: {result.error}")
    verb = "Raised" if result.created else "Updated"
    return success(f"{verb} pull request {result.url}")
