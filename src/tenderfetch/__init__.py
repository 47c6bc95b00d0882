"""
TenderFetch - Procurement attachment crawler and mirror.

Walks a multi-frame procurement portal, downloads announcement attachments,
records every processed entity in a run ledger and keeps a Google Drive
mirror in sync.
"""

__version__ = "0.1.0"
__app_name__ = "tenderfetch"
