#!/usr/bin/env python3
"""Programmatic await example.

This demonstrates using the operator components directly:

* load settings from `.env`
* store an Await intent for a paused workflow
* reconcile it and block until the Observer fires (or the timeout elapses)

The workflow, resource kind and filters are passed as arguments.
"""

from __future__ import annotations

import argparse
from typing import Sequence

from await_operator.operator.config import OperatorSettings
from await_operator.operator.controller import ReconcileOutcome
from await_operator.operator.intents import AwaitIntent, AwaitStore
from await_operator.operator.logging import configure_logging
from await_operator.operator.runtime import build_runtime


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Resume a workflow once a resource appears.")
    parser.add_argument("--workflow", required=True, help='Workflow in the form "namespace/name"')
    parser.add_argument("--kind", required=True, help="Resource kind to watch, e.g. ConfigMap")
    parser.add_argument("--api-version", default="", help="API version (empty = discover)")
    parser.add_argument(
        "--filters",
        default="",
        help='Comma-separated filters, e.g. "metadata.name==target-cm" (optional)',
    )
    parser.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    namespace, _, name = args.workflow.partition("/")
    filters = [f.strip() for f in args.filters.split(",") if f.strip()]

    settings = OperatorSettings()
    configure_logging(settings.log_level)

    intent = AwaitIntent.model_validate(
        {
            "name": f"await-{name}",
            "namespace": namespace,
            "workflow": {"name": name, "namespace": namespace},
            "resource": {"version": args.api_version, "kind": args.kind},
            "filters": filters,
        }
    )
    store = AwaitStore(settings.awaits_state_file)
    store.put(intent)

    runtime = build_runtime(settings, store)
    try:
        result = runtime.reconciler.reconcile(intent.intent_id)
        if result.outcome is not ReconcileOutcome.STARTED:
            print(f"Nothing to watch: {result.outcome.value}")
            return 0
        runtime.reconciler.wait(intent.intent_id, timeout=args.timeout)
    finally:
        runtime.close()

    status = store.get(intent.intent_id).status
    print(f"Observer {status.phase}; finished_at={status.finished_at}")
    print(f"Persisted to: {settings.awaits_state_file}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
