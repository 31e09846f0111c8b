"""
Pull request snapshot parsed from webhook payloads and its tracking entry.
"""

from dataclasses import dataclass, field
from typing import Any

from hookbuild.core.exceptions import MalformedEventError
from hookbuild.models.engine import Build


def _require(data: dict[str, Any], *path: str) -> Any:
    value: Any = data
    for key in path:
        if not isinstance(value, dict) or value.get(key) is None:
            raise MalformedEventError(f"pull request payload missing {'.'.join(path)}")
        value = value[key]
    return value


@dataclass(frozen=True)
class BranchRef:
    """One side (head or base) of a pull request."""

    ref: str
    sha: str
    owner: str
    repo: str
    clone_url: str

    @classmethod
    def from_payload(cls, data: dict[str, Any], side: str) -> "BranchRef":
        return cls(
            ref=_require(data, side, "ref"),
            sha=_require(data, side, "sha"),
            owner=_require(data, side, "repo", "owner", "login"),
            repo=_require(data, side, "repo", "name"),
            clone_url=_require(data, side, "repo", "ssh_url"),
        )


@dataclass(frozen=True)
class PullRequestSnapshot:
    """Latest known metadata of a pull request."""

    id: str
    number: int
    title: str
    html_url: str
    author: str
    head: BranchRef
    base: BranchRef

    @classmethod
    def from_payload(cls, data: dict[str, Any] | None) -> "PullRequestSnapshot":
        """
        Parse the ``pull_request`` object of a webhook payload.

        Raises:
            MalformedEventError: If the object is missing or incomplete
        """
        if not isinstance(data, dict):
            raise MalformedEventError("pull request is nil")
        return cls(
            id=str(_require(data, "id")),
            number=int(_require(data, "number")),
            title=data.get("title") or "",
            html_url=data.get("html_url") or "",
            author=_require(data, "user", "login"),
            head=BranchRef.from_payload(data, "head"),
            base=BranchRef.from_payload(data, "base"),
        )


@dataclass
class PullRequestEntry:
    """
    Tracking state for one pull request.

    The entry owns one reference on ``build``: it is taken in
    ``replace_build`` and given back when the build is replaced or the
    entry is released.
    """

    pull: PullRequestSnapshot
    merge_on_pass: bool = False
    build: Build | None = field(default=None, repr=False)
    # head hash a submission is in flight for
    pending_head: str = ""

    @property
    def current_build_token(self) -> str:
        return self.build.token if self.build is not None else ""

    def replace_build(self, build: Build | None) -> None:
        if build is not None:
            build.ref()
        if self.build is not None:
            self.build.unref()
        self.build = build

    def release(self) -> None:
        self.replace_build(None)
