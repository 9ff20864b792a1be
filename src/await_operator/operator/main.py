"""CLI entrypoint for the await operator."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from await_operator import __version__
from await_operator.operator.config import OperatorSettings
from await_operator.operator.controller import ReconcileOutcome
from await_operator.operator.errors import FilterError, NotFoundError
from await_operator.operator.filters import evaluate
from await_operator.operator.intents import AwaitIntent, AwaitStore
from await_operator.operator.logging import configure_logging
from await_operator.operator.observer import ObserverState
from await_operator.operator.resources import ResourceDescriptor, ResourceResolver
from await_operator.operator.runtime import build_runtime

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="await-operator",
        description="Resume paused workflows when a matching resource appears",
    )
    parser.add_argument(
        "--version", action="version", version=f"await-operator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser(
        "check-filters",
        help="Evaluate filters against a JSON resource payload (no cluster access)",
    )
    check.add_argument("--payload", required=True, help="Path to a JSON resource document")
    check.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=[],
        help="Filter expression, e.g. 'metadata.name==my-resource' (repeatable)",
    )

    resolve = subparsers.add_parser("resolve", help="Resolve a resource descriptor via discovery")
    resolve.add_argument("--group", default="", help="API group (empty for the core group)")
    resolve.add_argument("--version", dest="api_version", default="", help="API version")
    resolve.add_argument("--kind", default="", help="Resource kind, e.g. ConfigMap")
    resolve.add_argument("--name", default="", help="Plural resource name, e.g. configmaps")

    await_cmd = subparsers.add_parser(
        "await",
        help="Load an Await intent, reconcile it and block until its Observer terminates",
    )
    await_cmd.add_argument("--intent", required=True, help="Path to an Await intent JSON file")
    await_cmd.add_argument(
        "--timeout-seconds",
        type=float,
        default=0.0,
        help="Stop waiting after this many seconds (0 means wait indefinitely)",
    )

    serve = subparsers.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", type=int, default=8080, help="Bind port")

    return parser


def _check_filters(args: argparse.Namespace) -> int:
    try:
        payload = json.loads(Path(args.payload).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Unable to read payload {args.payload}: {e}", file=sys.stderr)
        return 2
    if not isinstance(payload, dict):
        print("Payload must be a JSON object", file=sys.stderr)
        return 2
    try:
        passed = evaluate(payload, args.filters)
    except FilterError as e:
        print(str(e), file=sys.stderr)
        return 2
    print("match" if passed else "no match")
    return 0 if passed else 4


def _await(args: argparse.Namespace, settings: OperatorSettings) -> int:
    raw = json.loads(Path(args.intent).read_text(encoding="utf-8"))
    intent = AwaitIntent.model_validate(raw)

    store = AwaitStore(settings.awaits_state_file)
    store.put(intent)
    runtime = build_runtime(settings, store)
    try:
        result = runtime.reconciler.reconcile(intent.intent_id)
        print(f"Await {intent.intent_id}: {result.outcome.value}")
        if result.outcome is not ReconcileOutcome.STARTED:
            return 0 if result.outcome is ReconcileOutcome.ALREADY_FIRED else 4

        runtime.reconciler.wait(intent.intent_id, timeout=args.timeout_seconds or None)
        states = {i.intent_id: i.state for i in runtime.reconciler.observers()}
        state = states.get(intent.intent_id)
        status = store.get(intent.intent_id).status
        print(
            f"Observer {state.value if state else 'unknown'}; "
            f"finished_at={status.finished_at}; message={status.message}"
        )
        if state is ObserverState.FIRED and status.message is None:
            return 0
        if state is ObserverState.FAILED or status.message:
            return 1
        return 4
    finally:
        runtime.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "check-filters":
        return _check_filters(args)

    try:
        settings = OperatorSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "resolve":
            runtime = build_runtime(settings, AwaitStore())
            try:
                descriptor = ResourceDescriptor(
                    group=args.group, version=args.api_version, kind=args.kind, name=args.name
                )
                handle = ResourceResolver(runtime.kube).resolve(descriptor)
            finally:
                runtime.close()
            print(
                f"{handle.resource} group={handle.group!r} version={handle.version} "
                f"kind={handle.kind} namespaced={handle.namespaced}"
            )
            return 0

        if args.command == "await":
            return _await(args, settings)

        if args.command == "serve":
            import uvicorn

            uvicorn.run(
                "await_operator.server.app:create_app",
                factory=True,
                host=args.host,
                port=args.port,
                log_config=None,
            )
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except NotFoundError as e:
        logger.warning(str(e))
        print(str(e), file=sys.stderr)
        return 3

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
