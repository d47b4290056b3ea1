"""
Memory curation.

Turns overlapping candidate clusters ("drafts") from upstream strategies into
a small set of non-redundant memories and picks a paced, diverse subset of
each memory's photos and videos.

Usage:
    from memory_curation.config import load_settings
    from memory_curation.services import CurationService

    service = CurationService(load_settings(), lookup)
    result = service.curate(drafts)
"""

__version__ = "0.1.0"
