"""Campaign Keeper command-line entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import json

from dotenv import load_dotenv

from .campaign import EventLogger, StateStore, TurnOrchestrator
from .config import AppConfig, load_config
from .dashboard import create_app
from .errors import CampaignError


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Campaign Keeper Dungeon Master backend")
    parser.add_argument("--config", default="config/config.yaml", help="Path to config YAML")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Host override")
    serve.add_argument("--port", type=int, default=None, help="Port override")

    turn = sub.add_parser("turn", help="Play a single turn from the command line")
    turn.add_argument("player_input", help="What the player does or says")
    turn.add_argument("--json", action="store_true", help="Print the full turn result as JSON")

    init = sub.add_parser("init", help="Seed an empty campaign state document")
    init.add_argument("--force", action="store_true", help="Overwrite an existing state document")

    sub.add_parser("usage", help="Show token usage for the current month")
    return parser.parse_args(argv)


async def _serve(config: AppConfig, host: str | None, port: int | None) -> None:
    import uvicorn

    orchestrator = TurnOrchestrator.from_config(config)
    app = create_app(
        orchestrator,
        cors_origins=config.server.cors_origins,
        recent_event_limit=config.logging.recent_event_limit,
    )
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host or config.server.host,
            port=port or config.server.port,
            log_level="info",
        )
    )
    await server.serve()


def _run_turn(config: AppConfig, player_input: str, as_json: bool) -> int:
    orchestrator = TurnOrchestrator.from_config(config)
    try:
        result = asyncio.run(orchestrator.process_turn(player_input))
    except CampaignError as exc:
        print(exc.notice)
        print(f"detail: {exc}")
        return 1
    if as_json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(result.display_text)
    return 2 if result.blocked else 0


def _init_state(config: AppConfig, force: bool) -> int:
    store = StateStore(config.storage.state_path)
    if store.initialize(force=force):
        event_logger = EventLogger(
            logs_dir=config.logging.logs_dir,
            event_file_name=config.logging.event_file_name,
        )
        event_logger.log("state_initialized", {"path": str(store.path), "force": force})
        print(f"Initialized campaign state at {store.path}")
    else:
        print(f"Campaign state already exists at {store.path} (use --force to overwrite)")
    return 0


def _show_usage(config: AppConfig) -> int:
    orchestrator = TurnOrchestrator.from_config(config)
    ledger = orchestrator.usage_store.current()
    limit = orchestrator.gate.limit
    pct = 100.0 * ledger.total_tokens / limit
    print(f"month: {ledger.month}")
    print(f"total_tokens: {ledger.total_tokens} / {limit} ({pct:.1f}%)")
    if orchestrator.gate.pre_call(ledger).blocked:
        print("status: blocked until next month")
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    config = load_config(args.config)

    if args.command == "serve":
        asyncio.run(_serve(config, args.host, args.port))
        return 0
    if args.command == "turn":
        return _run_turn(config, args.player_input, args.json)
    if args.command == "init":
        return _init_state(config, args.force)
    if args.command == "usage":
        return _show_usage(config)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
