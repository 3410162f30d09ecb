import sys
import asyncio
import json
from typing import Any, Dict, Optional

# --- Settings/Logging ---
from squad_role_ban.logging.setup import setup_logging
from squad_role_ban.config.settings import settings

setup_logging()

from loguru import logger
from pydantic import ValidationError

from squad_role_ban.enforcement.controller import ComplianceController
from squad_role_ban.host.game_server import GameServer
from squad_role_ban.models.enums import ServerEvent
from squad_role_ban.models.roster import Player, Squad
from squad_role_ban.models.tags import TagCatalog
from squad_role_ban.storage.supabase_client import initialize_supabase, SupabaseTagStore
from squad_role_ban.transport.rcon_client import RconWarnClient

from rich import print
from rich.panel import Panel
from rich.table import Table


def print_tag_settings(catalog: TagCatalog) -> None:
    table = Table(title="Configured tags")
    table.add_column("Tags", style="cyan")
    table.add_column("Readable name")
    table.add_column("Role regex", style="magenta")
    for tag_setting in catalog.tag_settings:
        table.add_row(", ".join(tag_setting.tags), tag_setting.readable_name, tag_setting.role_regex)

    print(
        Panel.fit(
            f"Command: !{settings.main_command}\nWarn interval: {settings.warn_interval}s\n"
            f"Persistence: {'on' if settings.persistence_enabled else 'off'}",
            title="Squad Role Ban",
        )
    )
    print(table)


async def dispatch_event(server: GameServer, line: str) -> None:
    """Applies one JSON line from the host to the roster and emits the event.

    Lines look like {"event": "PLAYER_ROLE_CHANGE", "data": {...}}. The
    ROSTER event replaces the snapshot; other events name a player_id and
    are emitted with the resolved player.
    """
    message: Dict[str, Any] = json.loads(line)
    event = message["event"]
    data = message.get("data", {})

    if event == "ROSTER":
        server.clear()
        for squad in data.get("squads", []):
            server.upsert_squad(Squad.model_validate(squad))
        for player in data.get("players", []):
            server.upsert_player(Player.model_validate(player))
        logger.debug(f"Roster updated: {len(server.players)} players, {len(server.squads)} squads")
        return

    player: Optional[Player] = None
    if data.get("player_id"):
        if event == ServerEvent.PLAYER_ROLE_CHANGE.value and "new_role" in data:
            player = server.update_player(data["player_id"], role=data["new_role"])
        elif event == ServerEvent.PLAYER_NOW_IS_NOT_LEADER.value:
            player = server.update_player(data["player_id"], is_leader=False)
        else:
            player = await server.get_player_by_id(data["player_id"])

    payload = dict(data, player=player)
    if event == ServerEvent.SQUAD_CREATED.value and data.get("squad"):
        squad = Squad.model_validate(data["squad"])
        server.upsert_squad(squad)
        payload["squad"] = squad

    await server.emit(event, payload)


async def read_events(server: GameServer) -> None:
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            logger.info("Event stream closed.")
            return
        line = line.strip()
        if not line:
            continue
        try:
            await dispatch_event(server, line)
        except (json.JSONDecodeError, KeyError, ValidationError) as e:
            logger.error(f"Skipping malformed event line {line!r}: {e}")


async def main() -> None:
    """Main entry point for the application."""
    logger.info("Starting Squad Role Ban")

    catalog = TagCatalog(settings.tags_settings)
    print_tag_settings(catalog)

    if not settings.rcon_bridge_url:
        logger.critical("RCON bridge URL not configured in settings.")
        return

    store = None
    if settings.persistence_enabled:
        supabase_client = await initialize_supabase()
        if not supabase_client:
            logger.critical("Failed to initialize Supabase client. Exiting.")
            return
        store = SupabaseTagStore(supabase_client, settings.supabase_table)

    rcon = RconWarnClient(settings.rcon_bridge_url, settings.rcon_bridge_token)
    server = GameServer()
    controller = ComplianceController(
        server,
        rcon.warn,
        catalog,
        warn_interval=settings.warn_interval,
        main_command=settings.main_command,
        help_message_interval=settings.help_message_interval,
        store=store,
    )

    try:
        await controller.mount()
        await read_events(server)
        await controller.flush_deliveries()
    except Exception:
        logger.exception("An error occurred during main execution loop.")
    finally:
        await controller.close()
        await rcon.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Execution interrupted by user (KeyboardInterrupt).")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Unhandled exception in main execution: {e}")
        sys.exit(1)
