from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from prcli import __version__
from prcli.core.config import settings
from prcli.core.errors import ConfigError, InvalidFormatError
from prcli.core.logging import configure_logging
from prcli.core.redaction import redact_tokens
from prcli.models.options import RunOptions
from prcli.services import dispatch
from prcli.services.executor.parser import parse_command
from prcli.services.executor.profiles import CliProfile


def _emit(payload: dict[str, Any], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    for key, value in payload.items():
        print(f"{key}: {value}")


def _fail(error: BaseException | str) -> int:
    print(f"command failed: {redact_tokens(str(error))}", file=sys.stderr)
    return 1


def _csv(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _run_options(args: argparse.Namespace) -> RunOptions:
    return RunOptions.from_settings(
        settings,
        platform=args.platform,
        token=args.token,
        comment_token=args.comment_token,
        base_url=args.base_url,
        owner=args.owner,
        repo=args.repo,
        pr_num=args.pr_num,
        comment_sender=args.comment_sender,
        trigger_comment=args.trigger_comment,
        debug=args.debug or None,
        lgtm_threshold=args.lgtm_threshold,
        lgtm_permissions=_csv(args.lgtm_permissions),
        merge_method=args.merge_method,
        self_check_name=args.self_check_name,
        robot_accounts=_csv(args.robot_accounts),
    )


def _run_dispatch(args: argparse.Namespace) -> int:
    try:
        options = _run_options(args)
        options.ensure_complete()
        result = dispatch.dispatch_comment(options, CliProfile(debug=options.debug))
    except ConfigError as exc:
        return _fail(exc)

    if result.error is not None:
        return _fail(result.error)
    if args.output_json:
        _emit(result.to_dict(), as_json=True)
    return 0


def _run_parse(args: argparse.Namespace) -> int:
    comment = args.comment if args.comment is not None else settings.trigger_comment
    try:
        parsed = parse_command(comment)
    except InvalidFormatError as exc:
        return _fail(exc)
    _emit(parsed.model_dump(mode="json"), as_json=True)
    return 0


def _run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from prcli.main import create_application

    overrides = {key: value for key, value in {"host": args.host, "port": args.port}.items() if value is not None}
    resolved = settings.model_copy(update=overrides)
    uvicorn.run(
        create_application(resolved),
        host=resolved.host,
        port=resolved.port,
        log_level=resolved.log_level.lower(),
    )
    return 0


def _run_version(args: argparse.Namespace) -> int:
    _emit({"version": __version__}, as_json=args.output_json)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pr-cli", description="Run slash commands from pull request comments.")
    parser.add_argument("--log-level", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_cmd = subparsers.add_parser("run", help="dispatch a trigger comment against a pull request")
    run_cmd.add_argument("--platform", choices=["github", "gitlab"], default=None)
    run_cmd.add_argument("--token", default=None)
    run_cmd.add_argument("--comment-token", default=None)
    run_cmd.add_argument("--base-url", default=None)
    run_cmd.add_argument("--owner", default=None)
    run_cmd.add_argument("--repo", default=None)
    run_cmd.add_argument("--pr-num", type=int, default=None)
    run_cmd.add_argument("--comment-sender", default=None)
    run_cmd.add_argument("--trigger-comment", default=None)
    run_cmd.add_argument("--debug", action="store_true")
    run_cmd.add_argument("--lgtm-threshold", type=int, default=None)
    run_cmd.add_argument("--lgtm-permissions", default=None, help="comma separated")
    run_cmd.add_argument("--merge-method", choices=["auto", "merge", "squash", "rebase"], default=None)
    run_cmd.add_argument("--self-check-name", default=None)
    run_cmd.add_argument("--robot-accounts", default=None, help="comma separated")
    run_cmd.add_argument("--output-json", action="store_true")
    run_cmd.set_defaults(handler=_run_dispatch)

    parse_cmd = subparsers.add_parser("parse", help="print how a comment would be parsed")
    parse_cmd.add_argument("comment", nargs="?", default=None)
    parse_cmd.set_defaults(handler=_run_parse)

    serve_cmd = subparsers.add_parser("serve", help="run the webhook service")
    serve_cmd.add_argument("--host", default=None)
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.set_defaults(handler=_run_serve)

    version_cmd = subparsers.add_parser("version")
    version_cmd.add_argument("--output-json", action="store_true")
    version_cmd.set_defaults(handler=_run_version)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    return args.handler(args)


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    raise SystemExit(main())
