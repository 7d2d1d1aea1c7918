"""
List-valued sections of a loaded record body.

Forms with repeatable sections (e.g. several vehicles or persons per record)
keep them as lists under a section key of the body. These helpers add, fetch
and remove items by index on the caller's in-memory body. The caller persists
the result with the next RecordStore.update() call, so every mutation must
leave the body serializable by the codec.
"""

from typing import Any, Callable

from recordstore.core.errors import MalformedRecordData
from recordstore.core.serialization import is_serializable
from recordstore.observability.logger import get_logger

logger = get_logger(__name__)


def _require_mapping(body: Any) -> dict:
    if not isinstance(body, dict):
        raise TypeError(f"record body must be a mapping to hold sections, got {type(body).__name__}")
    return body


def get_section_items(body: dict[str, Any], section: str) -> list[Any]:
    """
    Get the items of a list-valued section.

    Args:
        body: Deserialized record body
        section: Section key

    Returns:
        The live list stored in the body (empty list if the section is absent)

    Raises:
        TypeError: If the section exists but does not hold a list
    """
    items = _require_mapping(body).get(section)
    if items is None:
        return []
    if not isinstance(items, list):
        raise TypeError(f"section '{section}' holds {type(items).__name__}, not a list")
    return items


def item_count(body: dict[str, Any], section: str) -> int:
    return len(get_section_items(body, section))


def add_list_item(body: dict[str, Any], section: str, item: Any) -> int:
    """
    Append an item to a section, creating the section if needed.

    Args:
        body: Deserialized record body
        section: Section key
        item: JSON-compatible item

    Returns:
        Index of the new item

    Raises:
        MalformedRecordData: If the item cannot be serialized (body is left unchanged)
    """
    had_key = section in _require_mapping(body)
    created = body.get(section) is None
    items = get_section_items(body, section)
    if created:
        body[section] = items

    items.append(item)
    if not is_serializable(body):
        items.pop()
        if created and had_key:
            body[section] = None
        elif created:
            del body[section]
        raise MalformedRecordData(
            f"item added to section '{section}' cannot be serialized", operation="serialize"
        )
    return len(items) - 1


def get_or_create_list_item(
    body: dict[str, Any],
    section: str,
    index: int,
    factory: Callable[[], Any] = dict,
) -> Any:
    """
    Fetch the item at ``index``, creating it when ``index`` is one past the end.

    Args:
        body: Deserialized record body
        section: Section key
        index: Item position
        factory: Builds a blank item when one must be created

    Returns:
        The existing or newly created item

    Raises:
        IndexError: If index is negative or more than one past the end
    """
    items = get_section_items(body, section)
    if 0 <= index < len(items):
        return items[index]
    if index == len(items):
        new_index = add_list_item(body, section, factory())
        logger.debug(f"Created item {new_index} in section '{section}'")
        return body[section][new_index]
    raise IndexError(f"section '{section}' has {len(items)} items, cannot get or create index {index}")


def delete_list_item(body: dict[str, Any], section: str, index: int) -> bool:
    """
    Remove the item at ``index``.

    Returns:
        True if an item was removed, False if the section or index does not exist
    """
    items = get_section_items(body, section)
    if not 0 <= index < len(items):
        logger.warning(f"No item {index} in section '{section}' to delete ({len(items)} items)")
        return False
    del items[index]
    return True
