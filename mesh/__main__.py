import argparse
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Set

from cardtable.errors import IntentError
from cardtable.games import create_engine
from cardtable.intents import parse_intent
from cardtable.models import GameType, default_config

from .coordinator import ReplicationCoordinator
from .transport import WebSocketTransport

LOGGER = logging.getLogger("mesh")

COMMANDS = "start | end | state | quit | <intent json>"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Peer-to-peer card table")
    parser.add_argument("--peer-id", required=True)
    parser.add_argument("--name", default="")
    parser.add_argument("--avatar", default="")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    host = sub.add_parser("host", help="Serve a table and run its engine")
    host.add_argument("--game", choices=[game.value for game in GameType], required=True)
    host.add_argument("--host", default="0.0.0.0")
    host.add_argument("--port", type=int, default=8765)
    host.add_argument("--min-bet", type=int, default=None)
    host.add_argument("--max-bet", type=int, default=None)
    host.add_argument("--seed", type=int, default=None, help="Fix the shuffle for reproducible tables")

    join = sub.add_parser("join", help="Join a table served by another peer")
    join.add_argument("--game", choices=[game.value for game in GameType], required=True)
    join.add_argument("--url", default="ws://127.0.0.1:8765")
    return parser.parse_args(argv)


def _config_overrides(args: argparse.Namespace) -> Dict[str, int]:
    overrides: Dict[str, int] = {}
    if getattr(args, "min_bet", None) is not None:
        overrides["min_bet"] = args.min_bet
    if getattr(args, "max_bet", None) is not None:
        overrides["max_bet"] = args.max_bet
    return overrides


async def run(args: argparse.Namespace) -> None:
    game = GameType(args.game)
    config = default_config(game, **_config_overrides(args))
    transport = WebSocketTransport(args.peer_id, args.name, args.avatar)
    engine = create_engine(game, config, getattr(args, "seed", None))

    if args.command == "host":
        coordinator = ReplicationCoordinator(transport, engine, args.peer_id)
        coordinator.add_player(transport.identity)
        seat_arrivals(coordinator, transport)
        await transport.serve(args.host, args.port)
    else:
        host_id = await transport.connect(args.url)
        coordinator = ReplicationCoordinator(transport, engine, host_id)

    coordinator.on_state(lambda state, revision: LOGGER.info("Revision %d: phase=%s", revision, state.get("phase")))
    coordinator.on_error(lambda code, msg: print(f"Rejected: {msg} ({code})"))
    coordinator.on_closed(lambda: print("Host left; session closed"))

    try:
        await command_loop(coordinator)
    finally:
        coordinator.close()
        await transport.close()


def seat_arrivals(coordinator: ReplicationCoordinator, transport: Any) -> Set[str]:
    """Seat every peer that completes the handshake.

    Seats only change between rounds, so a peer arriving mid-round waits
    until the table is back in a lobby phase. Returns the waiting set.
    """
    engine = coordinator.engine
    waiting: Set[str] = set()

    def seat(peer_id: str) -> None:
        if engine.find_player(peer_id) is not None:
            waiting.discard(peer_id)
            return
        if engine.phase.value not in engine.LOBBY_PHASES:
            if peer_id not in waiting:
                print(f"{peer_id} joined mid-round; seating them when the round ends")
            waiting.add(peer_id)
            return
        waiting.discard(peer_id)
        coordinator.add_player(transport.identities[peer_id])

    def on_connection(peer_id: str, connected: bool) -> None:
        if connected:
            seat(peer_id)
        else:
            waiting.discard(peer_id)

    def on_state(state: Dict[str, Any], revision: int) -> None:
        for peer_id in sorted(waiting):
            seat(peer_id)

    transport.on_connection_change(on_connection)
    coordinator.on_state(on_state)
    return waiting


async def command_loop(coordinator: ReplicationCoordinator) -> None:
    loop = asyncio.get_running_loop()
    print(f"Commands: {COMMANDS}")
    while not coordinator.closed:
        line = (await loop.run_in_executor(None, input, "> ")).strip()
        if not line:
            continue
        if line == "quit":
            return
        if line == "state":
            print(json.dumps(coordinator.state(), indent=2))
        elif line in ("start", "end"):
            if not coordinator.is_host:
                print("Only the host controls rounds")
                continue
            handled = coordinator.start_round() if line == "start" else coordinator.end_round()
            print("ok" if handled else "rejected")
        else:
            handle_intent(coordinator, line)


def handle_intent(coordinator: ReplicationCoordinator, line: str) -> Any:
    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        print(f"Unknown command; expected {COMMANDS}")
        return False
    if isinstance(payload, dict):
        payload.setdefault("player_id", coordinator.peer_id)
    try:
        intent = parse_intent(coordinator.game, payload)
    except IntentError as exc:
        print(f"Bad intent: {exc}")
        return False
    return coordinator.submit(intent)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        asyncio.run(run(args))
    except (KeyboardInterrupt, EOFError):
        print("\nSession closed")


if __name__ == "__main__":
    main()
