"""
Knowledge base module.

User profiles, their rendering into knowledge base text, and profile
persistence.
"""

from formzilla.knowledge.profile import (
    STANDARD_FIELDS,
    UserProfile,
    build_knowledge_base,
    knowledge_base_entries,
)
from formzilla.knowledge.profile_store import (
    PersistenceFailed,
    ProfileKnowledgeWriter,
    ProfileStore,
    ProfileStoreError,
    get_profile_store,
)


__all__ = [
    "UserProfile",
    "STANDARD_FIELDS",
    "build_knowledge_base",
    "knowledge_base_entries",
    "ProfileStore",
    "ProfileKnowledgeWriter",
    "ProfileStoreError",
    "PersistenceFailed",
    "get_profile_store",
]
