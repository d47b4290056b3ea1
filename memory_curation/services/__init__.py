"""Services for memory curation business logic.

Services can be called from a job runner, an API handler, or tests.
"""

from memory_curation.services.curation_service import CurationService

__all__ = ['CurationService']
