"""Member curation: policy driven selection of a cluster's members."""

from memory_curation.selection.lookup import InMemoryMediaLookup, MemberMediaLookup
from memory_curation.selection.policy import SelectionPolicy, relaxation_steps
from memory_curation.selection.provider import SelectionPolicyProvider
from memory_curation.selection.selector import MemberSelectionContext, PolicyDrivenMemberSelector

__all__ = [
    'InMemoryMediaLookup',
    'MemberMediaLookup',
    'SelectionPolicy',
    'relaxation_steps',
    'SelectionPolicyProvider',
    'MemberSelectionContext',
    'PolicyDrivenMemberSelector',
]
