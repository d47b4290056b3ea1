"""Media lookup collaborator."""

from typing import Dict, Iterable, Mapping, Protocol

from memory_curation.domain.models import MediaRecord


class MemberMediaLookup(Protocol):
    """Resolves media ids to pre-loaded media records."""

    def find_by_ids(self, ids: Iterable[int]) -> Dict[int, MediaRecord]:
        """Return the records that exist; unknown ids are simply absent."""
        ...


class InMemoryMediaLookup:
    """Lookup backed by a dictionary of records."""

    def __init__(self, records: Iterable[MediaRecord] = ()):
        self._records: Dict[int, MediaRecord] = {record.id: record for record in records}

    @classmethod
    def from_mapping(cls, records: Mapping[int, MediaRecord]) -> "InMemoryMediaLookup":
        return cls(records.values())

    def add(self, record: MediaRecord) -> None:
        self._records[record.id] = record

    def find_by_ids(self, ids: Iterable[int]) -> Dict[int, MediaRecord]:
        return {i: self._records[i] for i in ids if i in self._records}

    def __len__(self) -> int:
        return len(self._records)
