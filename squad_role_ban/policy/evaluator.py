from typing import Optional, Sequence

from loguru import logger
from pydantic import BaseModel

from squad_role_ban.models.tags import TagCatalog, TagSetting, TypedTag


class RoleVerdict(BaseModel):
    """Outcome of checking a role against a squad's tags."""

    allowed: bool
    blocking_tag: Optional[TypedTag] = None
    blocking_setting: Optional[TagSetting] = None


def evaluate_role(
    typed_tags: Sequence[TypedTag], role: str, catalog: TagCatalog
) -> RoleVerdict:
    """
    Decides whether a role is allowed by a squad's tags.

    Tags are scanned in the given order (most recently set first). A matching
    positive tag allows the role and clears any earlier blocking tag. A
    non-matching positive tag blocks the role only until some positive tag has
    matched. A matching negative tag blocks the role, and only a later
    matching positive tag can clear it. The positive-match flag is not reset
    by a negative hit.

    Args:
        typed_tags: The squad's tags, most recent first.
        role: The player's current role name.
        catalog: Lookup from tag name to its setting.

    Returns:
        A RoleVerdict with the last blocking tag when the role is not allowed.
    """
    is_role_allowed = True
    blocking_tag: Optional[TypedTag] = None
    blocking_setting: Optional[TagSetting] = None
    previous_positive_setting_allowed = False

    for typed_tag in typed_tags:
        tag_setting = catalog.get(typed_tag.tag)
        if tag_setting is None:
            logger.debug(
                f"Found tag {typed_tag.tag} with type {typed_tag.type.value} in squad tags but no setting for it"
            )
            continue

        role_match = tag_setting.matches_role(role)

        if typed_tag.is_positive and role_match:
            is_role_allowed = True
            previous_positive_setting_allowed = True
            blocking_tag = None
            blocking_setting = None
        elif typed_tag.is_positive and not previous_positive_setting_allowed:
            is_role_allowed = False
            blocking_tag = typed_tag
            blocking_setting = tag_setting
        elif not typed_tag.is_positive and role_match:
            is_role_allowed = False
            blocking_tag = typed_tag
            blocking_setting = tag_setting

    logger.debug(
        f"Role {role} allowed: {is_role_allowed}, blocking setting "
        f"{blocking_setting.readable_name if blocking_setting else None}"
    )

    return RoleVerdict(
        allowed=is_role_allowed,
        blocking_tag=blocking_tag,
        blocking_setting=blocking_setting,
    )
