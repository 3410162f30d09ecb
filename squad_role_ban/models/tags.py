import re
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from .enums import TagType


class TagSetting(BaseModel):
    """Configuration record for a tag: its aliases and the roles it governs."""

    readable_name: str
    tags: List[str]
    role_regex: str

    @field_validator("role_regex")
    @classmethod
    def _role_regex_compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid role_regex '{value}': {e}") from e
        return value

    def matches_role(self, role: str) -> bool:
        # Unanchored search, same as matching the pattern anywhere in the role name
        return re.search(self.role_regex, role) is not None


class TypedTag(BaseModel):
    """A tag name with its polarity, serialized as e.g. '+medic'."""

    model_config = ConfigDict(frozen=True)

    type: TagType
    tag: str

    @property
    def token(self) -> str:
        return f"{self.type.value}{self.tag}"

    @property
    def is_positive(self) -> bool:
        return self.type == TagType.POSITIVE

    @classmethod
    def parse(cls, token: Optional[str]) -> Optional["TypedTag"]:
        """Splits a token into sign and lowercased tag name, None if malformed."""
        if not token or len(token) < 2:
            return None
        try:
            tag_type = TagType(token[0])
        except ValueError:
            return None
        return cls(type=tag_type, tag=token[1:].lower())

    def __str__(self) -> str:
        return self.token


class TagCatalog:
    """Case-insensitive lookup from every configured alias to its TagSetting."""

    def __init__(self, tag_settings: Iterable[TagSetting]):
        self.tag_settings: List[TagSetting] = list(tag_settings)
        self._by_tag: Dict[str, TagSetting] = {}
        for tag_setting in self.tag_settings:
            for tag in tag_setting.tags:
                self._by_tag[tag.lower()] = tag_setting

    def get(self, tag: Optional[str]) -> Optional[TagSetting]:
        if not tag:
            return None
        return self._by_tag.get(tag.lower())

    def __contains__(self, tag: object) -> bool:
        return isinstance(tag, str) and self.get(tag) is not None

    def __len__(self) -> int:
        return len(self._by_tag)

    def is_tag_valid(self, tag: Optional[str]) -> bool:
        return self.get(tag) is not None

    def is_typed_tag_valid(self, token: Optional[str]) -> bool:
        typed_tag = TypedTag.parse(token)
        return typed_tag is not None and self.is_tag_valid(typed_tag.tag)
