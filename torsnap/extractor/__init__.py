"""
Content targeting module for torsnap.

Locates the qualifying link and the crop region on fetched or rendered pages.
"""

from torsnap.extractor.targeting import (
    DEFAULT_LINK_TEXT,
    TargetLink,
    TargetRegion,
    find_link_in_html,
    find_link_on_page,
    follow_link,
    resolve_region,
)

__all__ = [
    "DEFAULT_LINK_TEXT",
    "TargetLink",
    "TargetRegion",
    "find_link_in_html",
    "find_link_on_page",
    "follow_link",
    "resolve_region",
]
