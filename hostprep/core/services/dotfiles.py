"""
Dotfiles — clone the configured repositories into the home directory.

GitHub-hosted repos go through ``gh repo clone`` (so private repos work
once ``gh`` is authenticated); plain URLs go through ``git clone``.
Conflicting destinations are backed up, never removed.
"""

from __future__ import annotations

import logging

from hostprep.core.engine.context import StepContext
from hostprep.core.models.step import StepResult

logger = logging.getLogger(__name__)

STEP_NAME = "clone-dotfiles"


def ensure_gh_auth(ctx: StepContext) -> str | None:
    """Make sure ``gh`` can clone. Returns an error message, or None."""
    if not ctx.git.gh_available():
        return "GitHub CLI ('gh') not found. Install it with the distribution packages first."

    if ctx.git.gh_authenticated():
        logger.info("Already authenticated with GitHub")
        return None

    logger.info("Not authenticated with GitHub, starting gh auth login")
    login = ctx.git.gh_login()
    if login.failed:
        return f"GitHub authentication failed: {login.error}"
    return None


def clone_dotfiles(ctx: StepContext) -> StepResult:
    """Clone every configured repo; a failed repo does not stop the others."""
    repos = ctx.config.dotfiles
    if not repos:
        return StepResult.skip(STEP_NAME, "No dotfile repositories configured")

    if any(r.method == "gh" for r in repos):
        error = ensure_gh_auth(ctx)
        if error:
            return StepResult.failure(STEP_NAME, error=error)

    cloned: list[str] = []
    skipped: list[str] = []
    backups: list[str] = []
    errors: list[str] = []

    for repo in repos:
        dest = ctx.expand(repo.dest)
        receipt = ctx.git.clone(
            repo.repo, dest, method=repo.method, on_conflict=repo.on_conflict
        )
        if receipt.failed:
            errors.append(receipt.error or f"Failed to clone {repo.repo}")
            continue
        if receipt.metadata.get("skipped"):
            skipped.append(repo.repo)
        else:
            cloned.append(repo.repo)
        if receipt.metadata.get("backup"):
            backups.append(receipt.metadata["backup"])

    metadata = {"cloned": cloned, "skipped": skipped, "backups": backups}
    if errors:
        return StepResult.failure(STEP_NAME, error="; ".join(errors), metadata=metadata)

    summary = f"Cloned {len(cloned)} repo(s)"
    if skipped:
        summary += f", {len(skipped)} already present"
    if backups:
        summary += f", {len(backups)} backup(s) made"
    return StepResult.success(STEP_NAME, output=summary, metadata=metadata)
