"""Pydantic models for GitHub webhook payloads and API requests/responses.

Only the fields the autoprotector uses are declared; everything else GitHub
sends is ignored.
"""

from enum import Enum

from pydantic import BaseModel


class User(BaseModel):
    login: str


class Repository(BaseModel):
    name: str
    owner: User


class RefType(str, Enum):
    """Type of a Git ref object."""

    BRANCH = "branch"
    TAG = "tag"


class RefCreationEvent(BaseModel):
    """Payload of a ``create`` webhook event."""

    ref: str
    ref_type: RefType
    # The repository's default branch (usually ``main``)
    master_branch: str
    repository: Repository
    sender: User

    @property
    def is_default_branch_creation(self) -> bool:
        """True for the first branch of a new repository."""
        return self.ref_type is RefType.BRANCH and self.ref == self.master_branch


class InstallationResponse(BaseModel):
    """Response of ``GET orgs/{org}/installation``."""

    id: int


class AccessTokenResponse(BaseModel):
    """Response of ``POST app/installations/{id}/access_tokens``."""

    token: str


class RequiredPullRequestReviews(BaseModel):
    """Require at least one approving review; no optional settings used."""


class ProtectBranchRequest(BaseModel):
    """Body of ``PUT repos/{owner}/{repo}/branches/{branch}/protection``.

    GitHub requires all four keys, so unsupported ones are sent as null.
    """

    required_status_checks: None = None
    enforce_admins: bool | None = None
    required_pull_request_reviews: RequiredPullRequestReviews | None = None
    restrictions: None = None


class CreateIssueRequest(BaseModel):
    title: str
    body: str | None = None


class CreateIssueResponse(BaseModel):
    # User-facing URL of the created issue
    html_url: str
