"""
Add/get/delete-by-index helpers for list-valued record sections.
"""

from .section_manager import (
    add_list_item,
    delete_list_item,
    get_or_create_list_item,
    get_section_items,
    item_count,
)

__all__ = [
    "get_section_items",
    "item_count",
    "add_list_item",
    "get_or_create_list_item",
    "delete_list_item",
]
