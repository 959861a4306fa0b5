from __future__ import annotations

import re
from typing import Callable, Sequence

from prcli.core.errors import (
    AlreadyReportedError,
    CherryPickFailedError,
    CherryPickReason,
    DispatchCancelledError,
    ExecutionFailedError,
    PlatformAPIError,
)
from prcli.core.logging import logger
from prcli.models.commands import CherryPickRequest
from prcli.models.options import RunOptions
from prcli.models.platform import Comment, PullRequest
from prcli.models.results import SubCommandResult
from prcli.services.executor.cancel import NEVER_CANCELLED, CancelToken
from prcli.services.executor.commands import COMMANDS_BY_NAME, allowed_in_batch
from prcli.services.executor.results import format_sub
from prcli.services.git.branches import repository_url
from prcli.services.git.cherrypick import CherryPicker
from prcli.services.handler import messages
from prcli.services.handler.checkbox import has_unchecked_checkbox, toggle_unchecked_checkboxes
from prcli.services.handler.comment_cache import CommentCache
from prcli.services.platforms.base import GitClient, pr_state

LGTM_RE = re.compile(r"^/lgtm\b", re.MULTILINE)
LGTM_CANCEL_RE = re.compile(r"^/lgtm cancel\b", re.MULTILINE)
REMOVE_LGTM_RE = re.compile(r"^/remove-lgtm\b", re.MULTILINE)
CHERRY_PICK_RE = re.compile(r"^/cherry-?pick\s+(\S+)", re.MULTILINE)

MERGE_METHODS = ("rebase", "squash", "merge")
POST_MERGE_CHERRY_PICK = "__post-merge-cherry-pick"

CherryPickRunner = Callable[[CherryPickRequest], str]


class PRHandler:
    """Runs recognised commands against one pull request and reports back on it."""

    def __init__(
        self,
        client: GitClient,
        options: RunOptions,
        *,
        comment_client: GitClient | None = None,
        cache: CommentCache | None = None,
        cherry_pick_runner: CherryPickRunner | None = None,
        cancel_token: CancelToken = NEVER_CANCELLED,
    ) -> None:
        self.client = client
        self.comment_client = comment_client or client
        self.options = options
        self.sender = options.comment_sender
        self.cache = cache or CommentCache(client.get_comments)
        self.cancel_token = cancel_token
        self.cherry_pick_runner = cherry_pick_runner or self._run_cherry_picker
        self.log = logger.bind(
            platform=options.platform,
            owner=options.owner,
            repo=options.repo,
            pr_num=options.pr_num,
            sender=self.sender,
        )
        self._handlers: dict[str, Callable[[list[str]], None]] = {
            "help": self.handle_help,
            "assign": self.handle_assign,
            "unassign": self.handle_unassign,
            "lgtm": self.handle_lgtm,
            "remove-lgtm": self.handle_remove_lgtm,
            "check": self.handle_check,
            "batch": self.handle_batch,
            "merge": self.handle_merge,
            "ready": self.handle_merge,
            "close": self.handle_close,
            "rebase": self.handle_rebase,
            "label": self.handle_label,
            "unlabel": self.handle_unlabel,
            "retest": self.handle_retest,
            "checkbox": self.handle_checkbox,
            "checkbox-issue": self.handle_checkbox_issue,
            "cherry-pick": self.handle_cherry_pick,
            "cherrypick": self.handle_cherry_pick,
            POST_MERGE_CHERRY_PICK: self.handle_post_merge_cherry_pick,
        }

    # Facade used by the executor.

    def run(self, command: str, args: Sequence[str]) -> None:
        handler = self._handlers.get(command)
        if handler is None:
            raise ExecutionFailedError(command, f"unknown command: {command}")
        self.log.info("running_command", command=command, args=list(args))
        handler(list(args))

    def post_comment(self, body: str) -> None:
        self.comment_client.post_comment(body)

    def check_pr_state(self, expected: str) -> None:
        self.client.check_pr_status(expected)

    def list_comments_cached(self) -> list[Comment]:
        return self.cache.get()

    # Helpers.

    def _report(self, command: str, body: str, reason: str) -> AlreadyReportedError:
        self.post_comment(body)
        return AlreadyReportedError(ExecutionFailedError(command, reason))

    def _is_robot(self, user: str) -> bool:
        return user.casefold() in {robot.casefold() for robot in self.options.robot_accounts}

    def _has_permission(self, permission: str) -> bool:
        return permission in self.options.lgtm_permissions

    def lgtm_votes(self, author: str) -> dict[str, str]:
        """Users whose latest vote comment is ``/lgtm`` and who hold an LGTM permission."""
        latest: dict[str, bool] = {}
        for comment in self.list_comments_cached():
            user = comment.author
            if not user or user.casefold() == author.casefold() or self._is_robot(user):
                continue
            if LGTM_CANCEL_RE.search(comment.body) or REMOVE_LGTM_RE.search(comment.body):
                latest[user] = False
            elif LGTM_RE.search(comment.body):
                latest[user] = True

        votes: dict[str, str] = {}
        for user, voted in latest.items():
            if not voted:
                continue
            permission = self.client.get_user_permission(user)
            if self._has_permission(permission):
                votes[user] = permission
        return votes

    def _require_privileged(self, command: str, pr: PullRequest) -> str:
        permission = self.client.get_user_permission(self.sender)
        if self._has_permission(permission) or self.sender.casefold() == pr.author.casefold():
            return permission
        body = messages.MERGE_INSUFFICIENT_PERMISSIONS.format(
            user=self.sender,
            permission=permission,
            required=", ".join(self.options.lgtm_permissions),
            author=pr.author,
        )
        raise self._report(command, body, f"insufficient permissions: {permission}")

    # Command handlers.

    def handle_help(self, args: list[str]) -> None:
        self.post_comment(
            messages.help_message(
                self.options.lgtm_threshold,
                self.options.lgtm_permissions,
                self.options.merge_method,
            )
        )

    def handle_assign(self, args: list[str]) -> None:
        users = [user.lstrip("@") for user in args if user.lstrip("@")]
        if not users:
            raise ExecutionFailedError("assign", "no users specified")
        self.client.assign_reviewers(users)
        self.post_comment(messages.ASSIGNMENT_GREETING.format(mentions=messages.mentions(users), user=self.sender))

    def handle_unassign(self, args: list[str]) -> None:
        users = [user.lstrip("@") for user in args if user.lstrip("@")]
        if not users:
            raise ExecutionFailedError("unassign", "no users specified")
        self.client.remove_reviewers(users)
        self.post_comment(messages.UNASSIGNMENT.format(mentions=messages.mentions(users)))

    def handle_lgtm(self, args: list[str]) -> None:
        pr = self.client.get_pr()
        threshold = self.options.lgtm_threshold
        required = self.options.lgtm_permissions

        if self.sender.casefold() == pr.author.casefold():
            status = messages.lgtm_status(self.lgtm_votes(pr.author), threshold, required)
            self.post_comment(messages.LGTM_SELF_APPROVAL.format(user=self.sender) + "\n\n" + status)
            return

        permission = self.client.get_user_permission(self.sender)
        if not self._has_permission(permission):
            body = messages.LGTM_PERMISSION_DENIED.format(
                user=self.sender, permission=permission, required=", ".join(required)
            )
            raise self._report("lgtm", body, f"insufficient permissions: {permission}")

        votes = self.lgtm_votes(pr.author)
        votes[self.sender] = permission
        if len(votes) >= threshold:
            self.client.approve_pr(f"LGTM from @{self.sender}")
            self.log.info("pr_approved", votes=len(votes), threshold=threshold)
        self.post_comment(messages.lgtm_status(votes, threshold, required))

    def handle_remove_lgtm(self, args: list[str]) -> None:
        pr = self.client.get_pr()
        threshold = self.options.lgtm_threshold
        permission = self.client.get_user_permission(self.sender)
        if not self._has_permission(permission):
            body = messages.REMOVE_LGTM_PERMISSION_DENIED.format(
                user=self.sender,
                permission=permission,
                required=", ".join(self.options.lgtm_permissions),
            )
            raise self._report("remove-lgtm", body, f"insufficient permissions: {permission}")

        had_vote = any(
            comment.author.casefold() == self.sender.casefold()
            and LGTM_RE.search(comment.body)
            and not LGTM_CANCEL_RE.search(comment.body)
            for comment in self.list_comments_cached()
        )
        if not had_vote:
            body = messages.REMOVE_LGTM_NO_APPROVAL.format(user=self.sender, permission=permission)
            raise self._report("remove-lgtm", body, "no approval to remove")

        votes = self.lgtm_votes(pr.author)
        votes.pop(self.sender, None)
        if len(votes) < threshold:
            self.client.dismiss_approval(f"LGTM removed by @{self.sender}")
        self.post_comment(
            messages.REMOVE_LGTM_STATUS.format(
                user=self.sender,
                votes=len(votes),
                threshold=threshold,
                needed=max(0, threshold - len(votes)),
            )
        )

    def handle_check(self, args: list[str]) -> None:
        if args:
            self._run_batch("check", args, messages.CHECK_HEADER)
            return
        pr = self.client.get_pr()
        votes = self.lgtm_votes(pr.author)
        status = messages.lgtm_status(
            votes, self.options.lgtm_threshold, self.options.lgtm_permissions, with_tip=True
        )
        checks = self.client.check_runs_status()
        self.post_comment(status + messages.checks_table(checks.failed))

    def handle_batch(self, args: list[str]) -> None:
        self._run_batch("batch", args, messages.BATCH_HEADER)

    def _run_batch(self, command: str, args: list[str], header: str) -> None:
        batch: list[tuple[str, list[str]]] = []
        for token in args:
            if token.startswith("/"):
                batch.append((token[1:], []))
            elif batch:
                batch[-1][1].append(token)
        if not batch:
            raise ExecutionFailedError(command, "no commands specified")

        results: list[SubCommandResult] = []
        for name, sub_args in batch:
            self.cancel_token.raise_if_cancelled()
            if name not in COMMANDS_BY_NAME or not allowed_in_batch(name):
                error = ExecutionFailedError(name, f"command /{name} is not allowed in {command}")
                results.append(SubCommandResult(command=name, args=tuple(sub_args), success=False, error=error))
                continue
            try:
                self.run(name, sub_args)
            except AlreadyReportedError as exc:
                results.append(SubCommandResult(command=name, args=tuple(sub_args), success=False, error=exc.wrapped))
            except DispatchCancelledError:
                raise
            except Exception as exc:
                results.append(SubCommandResult(command=name, args=tuple(sub_args), success=False, error=exc))
            else:
                results.append(SubCommandResult(command=name, args=tuple(sub_args)))

        self.post_comment(f"{header}\n\n" + "\n".join(format_sub(result) for result in results))
        failed = sum(1 for result in results if not result.success)
        if failed:
            raise AlreadyReportedError(ExecutionFailedError(command, f"{failed} of {len(results)} commands failed"))

    def handle_merge(self, args: list[str]) -> None:
        method = args[0] if args else self.options.merge_method
        if method not in (*MERGE_METHODS, "auto"):
            raise ExecutionFailedError("merge", f"unsupported merge method: {method}")

        pr = self.client.get_pr()
        self._require_privileged("merge", pr)

        checks = self.client.check_runs_status()
        if not checks.all_passed:
            body = messages.MERGE_CHECKS_NOT_PASSING.format(table=messages.checks_table(checks.failed).strip())
            raise self._report("merge", body, "checks are not passing")

        threshold = self.options.lgtm_threshold
        votes = self.lgtm_votes(pr.author)
        if len(votes) < threshold:
            body = messages.MERGE_NOT_ENOUGH_LGTM.format(
                votes=len(votes), threshold=threshold, needed=threshold - len(votes)
            )
            raise self._report("merge", body, "not enough LGTM approvals")

        candidates = MERGE_METHODS if method == "auto" else (method,)
        error: PlatformAPIError | None = None
        for candidate in candidates:
            try:
                self.client.merge_pr(candidate)
            except PlatformAPIError as exc:
                self.log.warning("merge_attempt_failed", method=candidate, error=str(exc))
                error = exc
                continue
            approvers = "\n".join(f"- @{user}" for user in votes) or "- none"
            self.post_comment(
                messages.MERGE_SUCCESS.format(
                    method=candidate,
                    user=self.sender,
                    votes=len(votes),
                    threshold=threshold,
                    approvers=approvers,
                )
            )
            return

        body = messages.MERGE_FAILED.format(number=pr.number, error=error)
        raise self._report("merge", body, f"merge failed: {error}")

    def handle_close(self, args: list[str]) -> None:
        self.client.close_pr()
        self.post_comment(messages.CLOSE_SUCCESS.format(user=self.sender))

    def handle_rebase(self, args: list[str]) -> None:
        try:
            self.client.rebase_pr()
        except PlatformAPIError as exc:
            raise self._report("rebase", messages.REBASE_FAILED.format(error=exc), str(exc)) from exc
        self.post_comment(messages.REBASE_SUCCESS)

    def handle_label(self, args: list[str]) -> None:
        if not args:
            raise ExecutionFailedError("label", "no labels specified")
        self.client.add_labels(args)
        self.post_comment(messages.LABELS_ADDED.format(labels=", ".join(f"`{label}`" for label in args)))

    def handle_unlabel(self, args: list[str]) -> None:
        if not args:
            raise ExecutionFailedError("unlabel", "no labels specified")
        self.client.remove_labels(args)
        self.post_comment(messages.LABELS_REMOVED.format(labels=", ".join(f"`{label}`" for label in args)))

    def handle_retest(self, args: list[str]) -> None:
        names = self.client.rerun_failed_checks()
        if not names:
            self.post_comment(messages.RETEST_NOTHING)
            return
        self.post_comment(messages.RETEST_TRIGGERED.format(count=len(names), names=", ".join(names)))

    def handle_checkbox(self, args: list[str]) -> None:
        pr = self.client.get_pr()
        target = f"PR #{pr.number} description"
        if not has_unchecked_checkbox(pr.body):
            raise self._report("checkbox", messages.CHECKBOX_NOTHING.format(target=target), "no unchecked checkboxes")
        body, count = toggle_unchecked_checkboxes(pr.body)
        self.client.update_pr_body(body)
        self.post_comment(messages.CHECKBOX_UPDATED.format(count=count, target=target))

    def handle_checkbox_issue(self, args: list[str]) -> None:
        if len(args) != 1 or not args[0].lstrip("#").isdigit():
            raise ExecutionFailedError("checkbox-issue", "usage: /checkbox-issue <issue>")
        number = int(args[0].lstrip("#"))
        issue = self.client.get_issue(number)
        target = f"issue #{number}"
        if not has_unchecked_checkbox(issue.body):
            raise self._report(
                "checkbox-issue", messages.CHECKBOX_NOTHING.format(target=target), "no unchecked checkboxes"
            )
        body, count = toggle_unchecked_checkboxes(issue.body)
        self.client.update_issue_body(number, body)
        self.post_comment(messages.CHECKBOX_UPDATED.format(count=count, target=target))

    def handle_cherry_pick(self, args: list[str]) -> None:
        if len(args) != 1:
            raise self._report("cherry-pick", messages.CHERRY_PICK_INVALID, "target branch is required")
        branch = args[0]
        pr = self.client.get_pr()
        self._require_privileged("cherry-pick", pr)

        state = pr_state(pr)
        if state == "open":
            self.post_comment(messages.CHERRY_PICK_SCHEDULED.format(branch=branch))
            return
        if state not in {"merged", "closed"}:
            body = messages.CHERRY_PICK_UNKNOWN_STATE.format(number=pr.number, state=state)
            raise self._report("cherry-pick", body, f"unsupported PR state: {state}")

        commits = [commit.sha for commit in self.client.get_commits()]
        if not commits:
            raise ExecutionFailedError("cherry-pick", f"PR #{pr.number} has no commits")
        if state == "closed":
            commits = commits[-1:]
        self.cherry_pick(pr, branch, commits)

    def handle_post_merge_cherry_pick(self, args: list[str]) -> None:
        pr = self.client.get_pr()
        if not pr.merged:
            self.log.info("post_merge_cherry_pick_skipped", state=pr.state)
            return

        branches: list[str] = []
        for comment in self.list_comments_cached():
            for branch in CHERRY_PICK_RE.findall(comment.body):
                if branch not in branches:
                    branches.append(branch)
        if not branches:
            self.log.info("post_merge_cherry_pick_nothing_requested")
            return

        commits = [commit.sha for commit in self.client.get_commits()]
        if not commits:
            raise ExecutionFailedError(POST_MERGE_CHERRY_PICK, f"PR #{pr.number} has no commits")
        failed: list[str] = []
        for branch in branches:
            self.cancel_token.raise_if_cancelled()
            try:
                self.cherry_pick(pr, branch, commits)
            except AlreadyReportedError as exc:
                self.log.error("post_merge_cherry_pick_failed", target_branch=branch, error=str(exc.wrapped))
                failed.append(branch)
        if failed:
            raise ExecutionFailedError(POST_MERGE_CHERRY_PICK, f"cherry-pick failed for: {', '.join(failed)}")

    def cherry_pick(self, pr: PullRequest, branch: str, commits: list[str]) -> None:
        request = CherryPickRequest(
            repo_url=repository_url(
                self.options.platform,
                self.options.token,
                self.options.owner,
                self.options.repo,
                self.options.base_url,
            ),
            token=self.options.token,
            owner=self.options.owner,
            repo=self.options.repo,
            pr_id=pr.number,
            target_branch=branch,
            commits=tuple(commits),
        )
        try:
            new_branch = self.cherry_pick_runner(request)
            new_pr = self.client.create_pr(
                title=f"[{branch}] {pr.title}",
                body=f"Cherry-pick of #{pr.number} onto `{branch}`.\n\n{pr.body}".rstrip(),
                head=new_branch,
                base=branch,
            )
        except CherryPickFailedError as exc:
            if exc.reason is CherryPickReason.CANCELLED:
                raise DispatchCancelledError(str(exc)) from exc
            body = messages.CHERRY_PICK_ERROR.format(number=pr.number, branch=branch, user=self.sender, error=exc)
            raise self._report("cherry-pick", body, str(exc)) from exc
        except PlatformAPIError as exc:
            body = messages.CHERRY_PICK_ERROR.format(number=pr.number, branch=branch, user=self.sender, error=exc)
            raise self._report("cherry-pick", body, str(exc)) from exc

        self.post_comment(
            messages.CHERRY_PICK_SUCCESS.format(
                number=pr.number,
                new_number=new_pr.number,
                branch=branch,
                user=self.sender,
                sha=request.last_commit,
            )
        )

    def _run_cherry_picker(self, request: CherryPickRequest) -> str:
        picker = CherryPicker(
            request,
            identity_domain=self.options.git_identity_domain,
            cancel_token=self.cancel_token,
        )
        return picker.run()
