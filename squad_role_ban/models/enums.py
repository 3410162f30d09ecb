from enum import Enum


class TagType(str, Enum):
    POSITIVE = "+"
    NEGATIVE = "-"


class ComplianceState(str, Enum):
    UNMONITORED = "UNMONITORED"  # Not in a squad, squad locked, or squad leader
    COMPLIANT = "COMPLIANT"
    VIOLATING = "VIOLATING"  # Warning timer is active


class ServerEvent(str, Enum):
    PLAYER_ROLE_CHANGE = "PLAYER_ROLE_CHANGE"
    PLAYER_NOW_IS_NOT_LEADER = "PLAYER_NOW_IS_NOT_LEADER"
    NEW_GAME = "NEW_GAME"
    SQUAD_CREATED = "SQUAD_CREATED"
    CHAT_COMMAND = "CHAT_COMMAND"  # Suffixed with ":<command>" when emitted
