"""
Selectors and markers of the procurement portal's frameset.

The portal is a legacy frameset: the top page holds a ``frmRIGHT`` frame
(search form, detail pages) which in turn embeds the ``#frmMain`` iframe
(result list).
"""

from __future__ import annotations

MAINTENANCE_BANNER = "サービス停止中"

# Top page
TOP_MENU_LINK = '[onclick="jsLink2(2);"]'
OUTER_FRAME = 'frame[name="frmRIGHT"]'

# Search form (inside the outer frame)
SEARCH_MENU_LINK = '[onclick="jskfcLink(4);"]'
PAGE_SIZE_SELECT = 'select[name="A300"]'
NAME_FIELD = '[name="koujimei"]'
SEARCH_BUTTON = '[onclick="doSearch1();"]'

PAGE_SIZE_OPTIONS = {
    10: "010",
    25: "020",
    50: "030",
    100: "040",
}

# Result list
RESULT_TABLE_MARKER = (
    'table[width="800"][border="0"][cellpadding="1"][cellspacing="1"] '
    'tbody tr td[align="left"]'
)
LIST_FRAME = "#frmMain"

# Detail page
BACK_BUTTON = 'input[value="戻る"]'


def attribute_selector(tag: str, attribute: str, value: str) -> str:
    """CSS selector matching an attribute value exactly."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'{tag}[{attribute}="{escaped}"]'
