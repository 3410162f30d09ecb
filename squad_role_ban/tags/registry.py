import re
from typing import Dict, List, Iterable, Set, Union

from loguru import logger

from squad_role_ban.models.roster import Squad, SquadIdentity
from squad_role_ban.models.tags import TagCatalog
from .tag_set import TypedTags

# Sign followed by Latin or Cyrillic letters, e.g. "[+mot -heli] Armor"
TAG_TOKEN_REGEX = re.compile(r"[+-][a-zA-Zа-яА-Я_]+", re.IGNORECASE)

SquadRef = Union[Squad, SquadIdentity]


def extract_tag_tokens(text: str) -> List[str]:
    """Returns every sign+letters token found in text."""
    return TAG_TOKEN_REGEX.findall(text)


def _squad_key(squad: SquadRef) -> str:
    if isinstance(squad, Squad):
        return squad.identity.key
    return squad.key


class SquadTagRegistry:
    """Squad identity to TypedTags, created lazily and dropped between matches."""

    def __init__(self, catalog: TagCatalog):
        self.catalog = catalog
        self._squad_tags: Dict[str, TypedTags] = {}

    def tags_for(self, squad: SquadRef) -> TypedTags:
        key = _squad_key(squad)
        typed_tags = self._squad_tags.get(key)
        if typed_tags is None:
            typed_tags = TypedTags(self.catalog)
            self._squad_tags[key] = typed_tags
        return typed_tags

    def derive_from_name(self, squad: Squad) -> List[str]:
        """Adds every valid tag found in the squad name, returns the added tokens."""
        typed_tags = self.tags_for(squad)
        added = []
        for token in extract_tag_tokens(squad.squad_name.lower()):
            if typed_tags.add(token):
                logger.debug(
                    f"Tag {token} derived from squad name '{squad.squad_name}', squad {squad.identity}"
                )
                added.append(token)
        return added

    def replace(self, squad: SquadRef, tokens: Iterable[str]) -> List[str]:
        """Replaces the squad's tags when at least one token is valid.

        Returns the accepted tokens; an empty list means the previous tags
        were left untouched.
        """
        typed_tags = TypedTags(self.catalog)
        added_tokens = [token for token in tokens if typed_tags.add(token)]

        if added_tokens:
            self._squad_tags[_squad_key(squad)] = typed_tags
        return added_tokens

    def clear(self, squad: SquadRef) -> None:
        self.tags_for(squad).clear()

    def clear_all(self) -> None:
        self._squad_tags.clear()

    def __len__(self) -> int:
        return len(self._squad_tags)

    def export_state(self) -> Dict[str, List[str]]:
        return {key: typed_tags.tokens() for key, typed_tags in self._squad_tags.items()}

    def import_state(self, state: Dict[str, List[str]]) -> Set[str]:
        """Restores exported tags, keeping their most-recent-first order.

        Returns the keys of the squads that were restored. A squad whose
        persisted tags are all unknown now is skipped, so its name can still
        provide tags. An empty persisted list is a cleared squad and is kept.
        """
        restored = set()
        for key, tokens in state.items():
            typed_tags = TypedTags(self.catalog)
            # add() prepends, so insert oldest first
            for token in reversed(tokens):
                if not typed_tags.add(token):
                    logger.warning(f"Skipping unknown persisted tag {token} for squad {key}")

            if tokens and not typed_tags.tokens():
                logger.warning(f"No known persisted tags left for squad {key}, not restoring it")
                continue

            self._squad_tags[key] = typed_tags
            restored.add(key)
        logger.info(f"Imported tags for {len(restored)} of {len(state)} squads.")
        return restored
