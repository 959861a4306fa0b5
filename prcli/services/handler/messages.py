"""Markdown bodies posted on pull requests."""

from __future__ import annotations

from typing import Iterable

from prcli.models.platform import CheckRun
from prcli.services.executor.commands import COMMANDS

COMMAND_ERROR = """❌ **Command Failed**

Command: `{command}`
Error: {error}

Please check the command usage or contact support if the issue persists."""

LGTM_PERMISSION_DENIED = """❌ **LGTM Permission Denied**

@{user}, you don't have sufficient permissions to approve this PR.

**Your permission:** `{permission}`
**Required permissions:** {required}

Only users with the required permissions can use the /lgtm command."""

LGTM_SELF_APPROVAL = """ℹ️ **Self-approval not allowed**

@{user}, as the PR author, you cannot approve your own PR.

However, I can show you the current LGTM status for this PR:"""

LGTM_STATUS_READY = """✅ **LGTM Status - Ready to Merge**

This PR has received **{votes}/{threshold}** valid LGTM approvals and meets the approval threshold.

**LGTM Summary:**
{table}

The PR is now ready for merge! 🎉"""

LGTM_STATUS_PENDING = """⏳ **LGTM Status**

This PR currently has **{votes}/{threshold}** valid LGTM approvals. **{needed} more approval(s) needed** to meet the threshold.

**Current LGTM Votes:**
{table}

**Required permissions:** {required}"""

LGTM_STATUS_TIP = "\n\n>  **Tip:** Use `/lgtm` to approve this PR if you have the required permissions."

REMOVE_LGTM_PERMISSION_DENIED = """❌ **Remove LGTM Permission Denied**

@{user}, you don't have sufficient permissions to dismiss approvals on this PR.

**Your permission:** `{permission}`
**Required permissions:** {required}

Only users with the required permissions can use the /remove-lgtm command."""

REMOVE_LGTM_NO_APPROVAL = """ℹ️ **No Approval to Remove**

@{user}, you don't have any active approval review to dismiss on this PR.

**Your permission:** `{permission}`

Use `/lgtm` first to approve the PR before you can remove your approval."""

REMOVE_LGTM_STATUS = """✅ **Approval Dismissed Successfully**

@{user} has dismissed their approval review.

**Updated LGTM Status:**
- Current valid approvals: **{votes}/{threshold}**
- Approvals needed: **{needed}**
"""

CHECKS_FAILED_HEADER = """

⚠️ **Check Runs Status - Some checks are not passing**

| Check Name | Status |
|------------|--------|"""

CHECKS_FAILED_FOOTER = """

> **Note:** All checks must pass before this PR can be merged."""

CHECKS_PASSED = """

✅ **Check Runs Status - All checks are passing**

This PR is ready for merge from a technical perspective!"""

MERGE_INSUFFICIENT_PERMISSIONS = """❌ **Insufficient Permissions**

@{user}, you don't have the required permissions to merge this PR.

**Your permission:** {permission}
**Required permissions:** {required}
**PR creator:** @{author}

You need either:
- Required repository permissions ({required}), OR
- Be the creator of this PR"""

MERGE_CHECKS_NOT_PASSING = """⚠️ **Cannot merge PR: Some checks are not passing**

{table}

Please wait for all checks to pass before merging."""

MERGE_NOT_ENOUGH_LGTM = """❌ **Cannot merge: Not enough LGTM approvals**

This PR has **{votes}/{threshold}** valid LGTM approvals. **{needed} more approval(s) needed**.

Please ensure the PR has sufficient approvals before merging."""

MERGE_FAILED = """❌ **Merge failed**

Failed to merge PR #{number}: {error}

Please check the PR status and try again."""

MERGE_SUCCESS = """🎉 **PR Successfully Merged!**

**Merge details:**
- **Method:** {method}
- **Merged by:** @{user}
- **LGTM votes:** {votes}/{threshold}

**Approvers:**
{approvers}

Thank you to all reviewers! 🙏"""

ASSIGNMENT_GREETING = """{mentions}

@{user} has requested your review on this pull request. Please take a look when you have a moment. Thanks! 🙏"""

UNASSIGNMENT = "♻️ Removed {mentions} from the review list. Thanks for your time!"

REBASE_FAILED = "❌ **Rebase failed**: {error}"
REBASE_SUCCESS = "✅ **PR rebased successfully** on the base branch."

CLOSE_SUCCESS = "🔒 **PR closed** by @{user}."

LABELS_ADDED = "🏷️ Added label(s): {labels}"
LABELS_REMOVED = "🏷️ Removed label(s): {labels}"

RETEST_TRIGGERED = "🔄 Re-running {count} failed check(s): {names}"
RETEST_NOTHING = "ℹ️ No failed checks to re-run."

CHECKBOX_UPDATED = "☑️ Checked {count} checkbox(es) in {target}."
CHECKBOX_NOTHING = "ℹ️ No unchecked checkboxes found in {target}."

CHERRY_PICK_INVALID = """❌ **Invalid cherrypick command**

Usage: `/cherrypick <target-branch>`

Examples:
- `/cherrypick release-3.9`
- `/cherrypick release-1.15`

Please specify the target branch for the cherrypick."""

CHERRY_PICK_UNKNOWN_STATE = """❌ **Cannot cherrypick PR**

PR #{number} has an unknown state. Cherrypick can be performed on:
- **Merged PRs** (cherrypick is created immediately)
- **Open PRs** (cherrypick is scheduled for when the PR merges)
- **Closed PRs** (cherrypick the last commit)

Current PR state: {state}"""

CHERRY_PICK_ERROR = """❌ **Cherry Pick Failed**

Failed to cherry-pick changes from PR #{number} to branch `{branch}`:
* Requested by: @{user}
* Error: `{error}`

*Possible causes:*
* **🔀 Merge conflicts** - Changes conflict with target branch
* **🍴 Fork PR** - Commits may not be available in target repository
* **🔒 Branch protection rules** - Target branch has restrictions
* **❌ Invalid branch name** - Target branch doesn't exist

Please resolve any issues and try again."""

CHERRY_PICK_SUCCESS = """✅ **Cherry Pick Successful**

Successfully cherry-picked changes from PR #{number} to branch `{branch}`.

*Details:*
* Source PR: #{number}
* Cherry-pick PR: #{new_number}
* Target Branch: `{branch}`
* Cherry-picked by: @{user}
* Latest commit SHA: `{sha}`"""

CHERRY_PICK_SCHEDULED = "✅ We will cherry-pick this PR to the branch `{branch}` upon merge."

BATCH_HEADER = "**Batch Execution Results:**"
CHECK_HEADER = "**Check Command Results:**"


def command_error(command: str, error: str) -> str:
    return COMMAND_ERROR.format(command=command, error=error)


def mentions(users: Iterable[str]) -> str:
    return " ".join(user if user.startswith("@") else f"@{user}" for user in users)


def help_message(lgtm_threshold: int, lgtm_permissions: Iterable[str], merge_method: str) -> str:
    rows = "\n".join(f"- `{spec.usage}` - {spec.description}" for spec in COMMANDS)
    return (
        "### 🤖 PR CLI Commands\n\n"
        f"{rows}\n\n"
        "**Configuration:**\n"
        f"- **LGTM Threshold:** {lgtm_threshold}\n"
        f"- **Required Permissions:** {', '.join(lgtm_permissions)}\n"
        f"- **Default Merge Method:** {merge_method}\n\n"
        "> 💡 **Tip:** Use @username format for user mentions in assign/unassign commands"
    )


def votes_table(votes: dict[str, str]) -> str:
    """Render ``{user: permission}`` as the LGTM vote table."""
    if not votes:
        return "_No LGTM votes yet._"
    lines = ["| User | Permission | Valid |", "|------|------------|-------|"]
    for user, permission in votes.items():
        lines.append(f"| @{user} | {permission} | ✅ |")
    return "\n".join(lines)


def checks_table(failed: list[CheckRun]) -> str:
    if not failed:
        return CHECKS_PASSED
    rows = [CHECKS_FAILED_HEADER]
    for check in failed:
        status = check.conclusion or check.status or "unknown"
        name = f"[{check.name}]({check.url})" if check.url else check.name
        rows.append(f"| {name} | {status} |")
    return "\n".join(rows) + CHECKS_FAILED_FOOTER


def lgtm_status(votes: dict[str, str], threshold: int, required: Iterable[str], *, with_tip: bool = False) -> str:
    count = len(votes)
    table = votes_table(votes)
    if count >= threshold:
        return LGTM_STATUS_READY.format(votes=count, threshold=threshold, table=table)
    message = LGTM_STATUS_PENDING.format(
        votes=count,
        threshold=threshold,
        needed=threshold - count,
        table=table,
        required=", ".join(required),
    )
    return message + LGTM_STATUS_TIP if with_tip else message
