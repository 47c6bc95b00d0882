"""
Extraction data structures.

Entities and attachment candidates as read from the portal's documents.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Entity:
    """One procurement announcement row from the result list."""

    entity_id: str
    name: str
    section_name: str
    release_date: str
    detail_link_token: str  # href of the detail anchor, used verbatim as a selector
    is_new: bool = False


@dataclass(frozen=True)
class AttachmentCandidate:
    """One linked file on an entity's detail page."""

    file_name: str
    link_token: str
    eligible: bool
