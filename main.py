"""CLI entrypoint for the AI pricing agent."""

from __future__ import annotations

import argparse
import getpass
import json
import sys

from utils.exceptions import ConflictError, SearchUnavailableError, ValidationError
from utils.logger import configure_from_settings
from webapp.runtime import get_orchestrator


def _json(text: str):
    raw = str(text or "").strip()
    if not raw:
        return {}
    return json.loads(raw)


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _dump(model):
    return model.model_dump(mode="json") if model is not None else None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PCB AI pricing agent CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a pricing pass in the foreground (Ctrl-C cancels it)")
    run.add_argument("--dry-run", action="store_true", help="Compute prices without writing the catalog")
    run.add_argument("--initiated-by", default=None)

    sub.add_parser("status")
    sub.add_parser("history")

    report = sub.add_parser("report", help="Show a run report (latest by default)")
    report.add_argument("--run-id", default="")

    delete = sub.add_parser("delete", help="Delete a run report and its history entry")
    delete.add_argument("--run-id", required=True)

    cancel = sub.add_parser("cancel")
    cancel.add_argument("--run-id", default="")

    preview = sub.add_parser("preview", help="Evaluate one catalog item")
    preview.add_argument("--item-id", default="")
    preview.add_argument("--name", default="")

    settings = sub.add_parser("settings")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_sub.add_parser("show")
    update = settings_sub.add_parser("update")
    update.add_argument("--json", required=True, help="Partial settings document")
    secret = settings_sub.add_parser("set-secret")
    secret.add_argument("--value", default="", help="API key (prompted when omitted)")
    settings_sub.add_parser("clear-secret")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_from_settings()
    orchestrator = get_orchestrator()

    if args.command == "run":
        try:
            started = orchestrator.start(dry_run=args.dry_run, initiated_by=args.initiated_by or "cli")
        except ConflictError as exc:
            _print({"error": exc.message})
            return 1
        # the worker is a daemon thread, so the process must outlive the run
        try:
            orchestrator.wait()
        except KeyboardInterrupt:
            orchestrator.cancel(started.run_id)
            orchestrator.wait()
        report = orchestrator.get_report(started.run_id)
        _print({"report": _dump(report)})
        return 0 if report is not None and report.status == "completed" else 1

    if args.command == "status":
        _print(_dump(orchestrator.status()))
        return 0

    if args.command == "history":
        _print({"history": [_dump(entry) for entry in orchestrator.history()]})
        return 0

    if args.command == "report":
        if args.run_id:
            report = orchestrator.get_report(args.run_id)
        else:
            report = orchestrator.get_latest_report()
        _print({"report": _dump(report)})
        return 0

    if args.command == "delete":
        try:
            deleted = orchestrator.delete_report(args.run_id)
        except ConflictError as exc:
            _print({"error": exc.message})
            return 1
        _print({"run_id": args.run_id, "deleted": deleted})
        return 0

    if args.command == "cancel":
        _print({"canceled": orchestrator.cancel(args.run_id or None)})
        return 0

    if args.command == "preview":
        if not args.item_id and not args.name:
            _print({"error": "--item-id or --name is required"})
            return 2
        try:
            result = orchestrator.preview(item_id=args.item_id or None, name=args.name or None)
        except SearchUnavailableError as exc:
            _print({"error": exc.message})
            return 1
        if result is None:
            _print({"error": "Product not found"})
            return 1
        _print(_dump(result))
        return 0

    if args.command == "settings":
        store = orchestrator.settings_store
        if args.settings_command == "show":
            _print({"settings": _dump(store.get_or_create())})
            return 0
        if args.settings_command == "update":
            try:
                settings = store.update(_json(args.json))
            except ValidationError as exc:
                _print({"error": exc.message, "details": exc.errors})
                return 2
            _print({"settings": _dump(settings)})
            return 0
        if args.settings_command == "set-secret":
            value = args.value or getpass.getpass("API key: ")
            try:
                settings = store.update({"api_key": value})
            except ValidationError as exc:
                _print({"error": exc.message, "details": exc.errors})
                return 2
            _print({"settings": _dump(settings)})
            return 0
        if args.settings_command == "clear-secret":
            _print({"settings": _dump(store.clear_secret())})
            return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
