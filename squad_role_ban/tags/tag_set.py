from typing import List, Optional

from squad_role_ban.models.tags import TagCatalog, TypedTag


class TypedTags:
    """Ordered tags of one squad, most recently added first.

    At most one entry per tag name, whatever its sign.
    """

    def __init__(self, catalog: TagCatalog):
        self.catalog = catalog
        self._typed_tags: List[TypedTag] = []

    def tags(self) -> List[TypedTag]:
        return list(self._typed_tags)

    def tokens(self) -> List[str]:
        return [typed_tag.token for typed_tag in self._typed_tags]

    def add(self, token: Optional[str]) -> bool:
        typed_tag = TypedTag.parse(token)
        if typed_tag is None or not self.catalog.is_tag_valid(typed_tag.tag):
            return False

        previous_tags = [t for t in self._typed_tags if t.tag != typed_tag.tag]
        self._typed_tags = [typed_tag, *previous_tags]
        return True

    def remove(self, tag: Optional[str]) -> bool:
        if not self.catalog.is_tag_valid(tag):
            return False

        tag = tag.lower()
        self._typed_tags = [t for t in self._typed_tags if t.tag != tag]
        return True

    def clear(self) -> None:
        self._typed_tags = []

    def __len__(self) -> int:
        return len(self._typed_tags)

    def __repr__(self) -> str:
        return f"TypedTags({self.tokens()})"
