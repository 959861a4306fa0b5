from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Mapping, NamedTuple, Sequence

from prcli.core.errors import CherryPickFailedError, CherryPickReason, DispatchCancelledError
from prcli.core.logging import logger
from prcli.core.redaction import redact_tokens
from prcli.models.commands import CherryPickRequest
from prcli.services.executor.cancel import NEVER_CANCELLED, CancelToken
from prcli.services.git.branches import cherry_pick_branch_name, host_from_url, sanitize_for_tempdir, strip_credentials

_POLL_SECONDS = 0.2
_CONFLICT_MARKERS = ("CONFLICT", "conflict", "unmerged files")
_EMPTY_MARKERS = ("empty", "nothing to commit", "the previous cherry-pick is now empty")


class GitOutput(NamedTuple):
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return f"{self.stdout}{self.stderr}"


GitRunner = Callable[[Sequence[str], Path, Mapping[str, str] | None, CancelToken], GitOutput]


def run_git(args: Sequence[str], cwd: Path, env: Mapping[str, str] | None, cancel_token: CancelToken) -> GitOutput:
    """Run ``git <args>`` in ``cwd``, killing it when the dispatch is cancelled or out of time."""
    cancel_token.raise_if_cancelled()
    proc = subprocess.Popen(
        ["git", *args],
        cwd=cwd,
        env=dict(env) if env is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    while True:
        try:
            stdout, stderr = proc.communicate(timeout=_POLL_SECONDS)
        except subprocess.TimeoutExpired:
            if cancel_token.cancelled:
                proc.kill()
                proc.communicate()
                cancel_token.raise_if_cancelled()
            continue
        return GitOutput(proc.returncode, stdout, stderr)


class _GitCommandError(Exception):
    def __init__(self, args: Sequence[str], result: GitOutput) -> None:
        self.result = result
        super().__init__(redact_tokens(f"git {' '.join(args)} failed ({result.returncode}): {result.output.strip()}"))


class CherryPicker:
    """Applies commits onto a fresh branch cut from the target branch and pushes it."""

    def __init__(
        self,
        request: CherryPickRequest,
        *,
        identity_domain: str = "alaudadevops.com",
        runner: GitRunner = run_git,
        cancel_token: CancelToken = NEVER_CANCELLED,
        workspace_root: str | None = None,
    ) -> None:
        self.request = request
        self.identity_domain = identity_domain
        self.runner = runner
        self.cancel_token = cancel_token
        self.workspace_root = workspace_root
        self.branch_name = cherry_pick_branch_name(request.pr_id, request.target_branch, request.last_commit)
        self.log = logger.bind(
            owner=request.owner,
            repo=request.repo,
            pr_num=request.pr_id,
            target_branch=request.target_branch,
            branch=self.branch_name,
        )
        self.workspace: Path | None = None

    def run(self) -> str:
        """Cherry-pick every commit in order and return the pushed branch name."""
        prefix = f"cherrypick-{self.request.repo}-{sanitize_for_tempdir(self.request.target_branch)}-"
        self.workspace = Path(tempfile.mkdtemp(prefix=prefix, dir=self.workspace_root))
        self.log.info("cherry_pick_started", commits=len(self.request.commits))
        try:
            repo_dir = self._clone(self.workspace)
            self._configure_identity(repo_dir)
            self._checkout_target(repo_dir)
            for sha in self.request.commits:
                self._fetch_commit(repo_dir, sha)
            for index, sha in enumerate(self.request.commits, start=1):
                self._apply_commit(repo_dir, sha, index)
            self._push(repo_dir)
        except DispatchCancelledError as exc:
            self.log.warning("cherry_pick_cancelled", error=str(exc))
            raise CherryPickFailedError(CherryPickReason.CANCELLED, f"cherry-pick cancelled: {exc}") from exc
        finally:
            shutil.rmtree(self.workspace, ignore_errors=True)
            self.log.debug("cherry_pick_workspace_removed", workspace=str(self.workspace))

        self.log.info("cherry_pick_completed")
        return self.branch_name

    def _git(self, cwd: Path, *args: str, env: Mapping[str, str] | None = None) -> GitOutput:
        self.cancel_token.raise_if_cancelled()
        result = self.runner(list(args), cwd, env, self.cancel_token)
        if result.returncode != 0:
            raise _GitCommandError(args, result)
        return result

    def _clone(self, workspace: Path) -> Path:
        repo_dir = workspace / "repo"
        env = {
            **os.environ,
            "GIT_ASKPASS": "echo",
            "GIT_USERNAME": "token",
            "GIT_PASSWORD": self.request.token,
        }
        try:
            self._git(workspace, "clone", self.request.repo_url, str(repo_dir), env=env)
            return repo_dir
        except _GitCommandError as first:
            self.log.warning("clone_with_token_url_failed", error=str(first))
            shutil.rmtree(repo_dir, ignore_errors=True)
            try:
                self._git(
                    workspace,
                    "clone",
                    strip_credentials(self.request.repo_url),
                    str(repo_dir),
                    env=self._credential_env(),
                )
            except _GitCommandError as second:
                raise CherryPickFailedError(
                    CherryPickReason.CLONE_FAILED,
                    f"failed to clone repository with both methods: {first}; {second}",
                ) from second
        return repo_dir

    def _credential_env(self) -> dict[str, str]:
        host = host_from_url(self.request.repo_url)
        username = "oauth2" if "oauth2:" in self.request.repo_url else "token"
        return {
            **os.environ,
            "GIT_ASKPASS": "echo",
            "GIT_TERMINAL_PROMPT": "0",
            "GIT_CONFIG_KEY_0": f"credential.https://{host}.username",
            "GIT_CONFIG_VALUE_0": username,
            "GIT_CONFIG_KEY_1": f"credential.https://{host}.password",
            "GIT_CONFIG_VALUE_1": self.request.token,
            "GIT_CONFIG_COUNT": "2",
        }

    def _configure_identity(self, repo_dir: Path) -> None:
        try:
            self._git(repo_dir, "config", "user.email", f"pr-cli@{self.identity_domain}")
            self._git(repo_dir, "config", "user.name", "PR CLI Bot")
        except _GitCommandError as exc:
            raise CherryPickFailedError(CherryPickReason.CLONE_FAILED, f"failed to configure git: {exc}") from exc

    def _checkout_target(self, repo_dir: Path) -> None:
        target = self.request.target_branch
        try:
            self._git(repo_dir, "fetch", "origin")
            self._git(repo_dir, "fetch", "origin", target)
            self._git(repo_dir, "rev-parse", "--verify", f"origin/{target}")
            self._git(repo_dir, "checkout", "-b", self.branch_name, f"origin/{target}")
        except _GitCommandError as exc:
            raise CherryPickFailedError(
                CherryPickReason.FETCH_FAILED,
                f"failed to checkout target branch {target}: {exc}",
            ) from exc

    def _fetch_commit(self, repo_dir: Path, sha: str) -> None:
        try:
            self._git(repo_dir, "fetch", "origin", sha)
        except _GitCommandError as exc:
            self.log.info("fetch_commit_by_sha_failed", commit=sha, error=str(exc))
            try:
                self._git(repo_dir, "fetch", "origin", "+refs/*:refs/remotes/origin/*")
            except _GitCommandError as fallback:
                raise CherryPickFailedError(
                    CherryPickReason.FETCH_FAILED, f"failed to fetch commit {sha}: {fallback}", commit=sha
                ) from fallback
        try:
            self._git(repo_dir, "rev-parse", "--verify", sha)
        except _GitCommandError as exc:
            raise CherryPickFailedError(
                CherryPickReason.FETCH_FAILED, f"commit {sha} not found after fetch: {exc}", commit=sha
            ) from exc

    def _apply_commit(self, repo_dir: Path, sha: str, index: int) -> None:
        log = self.log.bind(commit=sha, position=f"{index}/{len(self.request.commits)}")
        try:
            self._git(repo_dir, "cherry-pick", "-m", "1", sha)
            return
        except _GitCommandError:
            log.debug("cherry_pick_mainline_failed")

        try:
            self._git(repo_dir, "cherry-pick", sha)
            return
        except _GitCommandError as exc:
            if not any(marker in exc.result.output for marker in _CONFLICT_MARKERS):
                raise CherryPickFailedError(
                    CherryPickReason.CONFLICT_UNRESOLVABLE, f"failed to cherry-pick commit {sha}: {exc}", commit=sha
                ) from exc
        log.warning("cherry_pick_conflict_detected")

        self._abort(repo_dir)
        try:
            self._git(repo_dir, "cherry-pick", "--strategy=recursive", "--strategy-option=theirs", sha)
            return
        except _GitCommandError:
            log.info("cherry_pick_theirs_failed")

        self._abort(repo_dir)
        try:
            self._git(repo_dir, "cherry-pick", "--strategy=recursive", "--strategy-option=ours", sha)
            return
        except _GitCommandError as exc:
            if not any(marker in str(exc).lower() for marker in _EMPTY_MARKERS):
                raise CherryPickFailedError(
                    CherryPickReason.CONFLICT_UNRESOLVABLE,
                    f"failed to cherry-pick commit {sha} with automatic conflict resolution: {exc}",
                    commit=sha,
                ) from exc

        log.warning("cherry_pick_empty_commit_skipped")
        try:
            self._git(repo_dir, "cherry-pick", "--skip")
        except _GitCommandError as exc:
            raise CherryPickFailedError(
                CherryPickReason.EMPTY_COMMIT_SKIP_FAILED, f"failed to skip empty commit {sha}: {exc}", commit=sha
            ) from exc

    def _abort(self, repo_dir: Path) -> None:
        try:
            self._git(repo_dir, "cherry-pick", "--abort")
        except _GitCommandError as exc:
            self.log.debug("cherry_pick_abort_failed", error=str(exc))

    def _push(self, repo_dir: Path) -> None:
        try:
            self._git(repo_dir, "diff-index", "--quiet", "HEAD")
        except _GitCommandError:
            self.log.debug("working_tree_differs_from_head")
        try:
            self._git(repo_dir, "push", "-u", "origin", self.branch_name)
        except _GitCommandError as exc:
            raise CherryPickFailedError(
                CherryPickReason.PUSH_FAILED, f"failed to push branch {self.branch_name}: {exc}"
            ) from exc
