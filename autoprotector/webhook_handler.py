"""Webhook event handling: protect the default branch of new repositories."""

import logging

from fastapi import BackgroundTasks

from .clients.github import GitHubClient
from .errors import AutoprotectorError
from .models.github import (
    CreateIssueRequest,
    CreateIssueResponse,
    ProtectBranchRequest,
    RefCreationEvent,
    RequiredPullRequestReviews,
)

logger = logging.getLogger(__name__)

ISSUE_TITLE = "Branch protection automatically set up"


def _issue_body(creator: str, branch: str) -> str:
    return (
        f"@{creator}: The default branch [`{branch}`](../tree/{branch}) was automatically "
        "protected to comply with our corporate policies. Please submit pull requests in "
        "order to contribute changes, as direct pushes to this branch are not allowed. "
        "Every pull request needs to be approved by at least one person before it can be "
        "merged. Please review the [branch protection rules in the repository "
        "settings](../settings/branches) and extend them as necessary.\n"
        "\n"
        "This issue is just for your information and can be closed after reviewing the "
        "branch protection rules."
    )


def handle_ref_creation(
    event: RefCreationEvent, client: GitHubClient, background_tasks: BackgroundTasks,
) -> str:
    """Schedule branch protection for a new default branch; return the ack message."""
    if not event.is_default_branch_creation:
        logger.debug("[webhook] Unrelated ref creation event, ignoring")
        return "not listening to this ref creation event"

    organization = event.repository.owner.login
    repository = event.repository.name
    logger.info(
        "[webhook] Repository %r was created in organization %r with a new default branch %r",
        repository, organization, event.ref,
    )

    # Runs after the response is sent so GitHub gets its acknowledgment right away
    background_tasks.add_task(
        protect_default_branch, client, organization, repository, event.ref, event.sender.login,
    )
    return "creating branch protection rules and notifying creator of the default branch"


async def protect_default_branch(
    client: GitHubClient, organization: str, repository: str, branch: str, creator: str,
) -> None:
    """Disallow direct pushes to ``branch`` and tell ``creator`` about it in an issue.

    Failures are logged only; nobody is waiting for the result.
    """
    protection = ProtectBranchRequest(
        enforce_admins=True,
        required_pull_request_reviews=RequiredPullRequestReviews(),
    )
    try:
        await client.put(
            f"repos/{organization}/{repository}/branches/{branch}/protection", protection,
        )
    except AutoprotectorError:
        logger.exception(
            "[protect] Could not set up branch protection rule for branch %r in repository %r",
            branch, repository,
        )
        return

    logger.info("[protect] Set up branch protection rule for branch %r in repository %r", branch, repository)

    issue = CreateIssueRequest(title=ISSUE_TITLE, body=_issue_body(creator, branch))
    try:
        created = await client.post(
            f"repos/{organization}/{repository}/issues", issue, CreateIssueResponse,
        )
    except AutoprotectorError:
        logger.exception(
            "[protect] Could not notify repository creator about new branch protection rules "
            "set up for repository %r",
            repository,
        )
        return

    logger.info("[protect] Created issue informing about branch protection: %s", created.html_url)
