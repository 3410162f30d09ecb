"""
Shared fixtures for the squad role ban tests.

The roster is an in-memory GameServer with one squad:
    - squad "1" on team "1", created by player "100", named "Alpha"
    - player "100" leads it, player "200" is a Rifleman member
Notifications go to an AsyncMock so tests can assert on delivered texts.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from squad_role_ban.enforcement.controller import ComplianceController
from squad_role_ban.host.game_server import GameServer
from squad_role_ban.models.roster import Player, Squad
from squad_role_ban.models.tags import TagCatalog, TagSetting

WARN_INTERVAL = 0.02


@pytest.fixture
def tag_settings():
    return [
        TagSetting(readable_name="Medics", tags=["medic", "med"], role_regex="Medic.*"),
        TagSetting(readable_name="Officers", tags=["officer", "SL"], role_regex="Officer.*"),
        TagSetting(readable_name="Support", tags=["support"], role_regex="Medic|Rifleman"),
        TagSetting(readable_name="Crewmen", tags=["armor", "танк"], role_regex="Crewman.*"),
    ]


@pytest.fixture
def catalog(tag_settings):
    return TagCatalog(tag_settings)


@pytest.fixture
def squad():
    return Squad(squad_id="1", team_id="1", squad_name="Alpha", creator_id="100")


@pytest.fixture
def server(squad):
    return GameServer(
        squads=[squad],
        players=[
            Player(player_id="100", team_id="1", squad_id="1", role="Officer", is_leader=True),
            Player(player_id="200", team_id="1", squad_id="1", role="Rifleman"),
        ],
    )


@pytest.fixture
def notify():
    return AsyncMock()


@pytest.fixture
def controller(server, notify, catalog):
    return ComplianceController(
        server,
        notify,
        catalog,
        warn_interval=WARN_INTERVAL,
        help_message_interval=0,
    )


@pytest.fixture
def wait_until():
    """Polls a condition on the running loop, failing the test on timeout."""

    async def _wait_until(predicate, timeout: float = 1.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                pytest.fail("Condition not met before timeout")
            await asyncio.sleep(WARN_INTERVAL / 4)

    return _wait_until
