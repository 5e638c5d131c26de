"""Application entrypoint — start the API server or run one-off commands."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

import uvicorn

from skane_core.config import get_settings
from skane_core.logger import setup_logging


def _simulate(path: Path, user_id: str | None, session_id: str | None) -> int:
    """Run one full scan from a JSON signal file and print the UI view."""
    from skane_core.engine.models import PhysiologicalSignals, SituationalContext
    from skane_core.engine.scoring import IndexEngine
    from skane_core.engine.tuning import IndexConfig
    from skane_core.flow.orchestrator import FlowOrchestrator

    settings = get_settings()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Cannot read {path}: {exc}", file=sys.stderr)
        return 1

    # Either a bare signal mapping or {"signals": ..., "physiological": ..., "context": ...}
    if isinstance(payload, dict) and "signals" in payload:
        signals = payload.get("signals") or {}
        physiological = PhysiologicalSignals.model_validate(payload.get("physiological") or {})
        context = SituationalContext.model_validate(payload.get("context") or {})
    else:
        signals, physiological, context = payload, None, None

    orchestrator = FlowOrchestrator(
        session_id or uuid.uuid4().hex,
        user_id,
        device_id=settings.device_id,
        index_engine=IndexEngine(IndexConfig(strict=settings.strict_invariants)),
        history_window=settings.action_history_window,
        guest_actions_only=settings.guest_mode_actions_only,
        min_amplifier_dysregulation=settings.amplifier_min_dysregulation,
    )
    orchestrator.start_scan()
    view = orchestrator.process_scan(signals, physiological=physiological, context=context)
    print(view.model_dump_json(indent=2))
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="skane-core",
        description="Activation-state decision and scoring core.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── serve ─────────────────────────────────────────────────
    serve_parser = sub.add_parser("serve", help="Start the API server.")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")

    # ── init-db ───────────────────────────────────────────────
    sub.add_parser("init-db", help="Create database tables.")

    # ── simulate ──────────────────────────────────────────────
    sim_parser = sub.add_parser("simulate", help="Run one scan from a JSON signal file.")
    sim_parser.add_argument("signals", type=Path, help="JSON file with signal estimates.")
    sim_parser.add_argument("--user", default=None, help="Authenticated user id (guest if omitted).")
    sim_parser.add_argument("--session", default=None, help="Session id (random if omitted).")

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)

    if args.command == "serve":
        uvicorn.run(
            "skane_core.api.server:app",
            host=args.host or settings.api_host,
            port=args.port or settings.api_port,
            reload=args.reload,
        )
    elif args.command == "init-db":
        from skane_core.storage.database import init_db

        asyncio.run(init_db())
        print("Database tables created.")
    elif args.command == "simulate":
        sys.exit(_simulate(args.signals, args.user, args.session))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
