"""Extraction of entities and attachments from portal documents."""

from .base import AttachmentCandidate, Entity
from .pages import (
    is_eligible,
    list_attachments,
    list_entities,
    normalize_file_name,
    read_detail_table,
)

__all__ = [
    "AttachmentCandidate",
    "Entity",
    "is_eligible",
    "list_attachments",
    "list_entities",
    "normalize_file_name",
    "read_detail_table",
]
