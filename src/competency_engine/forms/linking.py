"""Many-to-many relation between requirement keys and evidence ids."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from competency_engine.domain.models import EvidenceSummary, JSONValue, RequirementKey
from competency_engine.forms.permissions import Capability, MutationResult, Permissions


class EvidenceLookup(Protocol):
    def find(self, evidence_id: str) -> EvidenceSummary | None: ...


class EvidenceLinkRegistry:
    """Per-form ordered sets of evidence ids keyed by requirement key."""

    def __init__(self, links: Mapping[RequirementKey, tuple[str, ...]] | None = None) -> None:
        # dict-as-ordered-set keeps insertion order without duplicates
        self._links: dict[RequirementKey, dict[str, None]] = {}
        for key, refs in (links or {}).items():
            bucket = self._links.setdefault(key, {})
            for ref in refs:
                bucket[_as_ref(ref)] = None

    def link(self, key: RequirementKey, ref: str, *, permissions: Permissions) -> MutationResult:
        gate = permissions.check(Capability.LINK)
        if not gate.applied:
            return gate
        self._links.setdefault(key, {})[_as_ref(ref)] = None
        return gate

    def unlink(self, key: RequirementKey, ref: str, *, permissions: Permissions) -> MutationResult:
        gate = permissions.check(Capability.LINK)
        if not gate.applied:
            return gate
        bucket = self._links.get(key)
        if bucket is not None:
            bucket.pop(_as_ref(ref), None)
            if not bucket:
                del self._links[key]
        return gate

    def list_linked(self, key: RequirementKey) -> tuple[str, ...]:
        return tuple(self._links.get(key, ()))

    def has_links(self, key: RequirementKey) -> bool:
        return bool(self._links.get(key))

    def keys_for(self, ref: str) -> tuple[RequirementKey, ...]:
        """Every key ``ref`` is linked to."""
        return tuple(key for key, bucket in self._links.items() if ref in bucket)

    def evidence_ids(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for bucket in self._links.values():
            seen.update(bucket)
        return tuple(seen)

    def resolve_linked(
        self, key: RequirementKey, store: EvidenceLookup
    ) -> tuple[EvidenceSummary, ...]:
        """Linked evidence summaries in link order; dangling ids are skipped."""
        resolved: list[EvidenceSummary] = []
        for ref in self.list_linked(key):
            summary = store.find(ref)
            if summary is not None:
                resolved.append(summary)
        return tuple(resolved)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._links.values())

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            key.format(): list(bucket)
            for key, bucket in sorted(self._links.items(), key=lambda item: item[0].format())
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object], path: str) -> EvidenceLinkRegistry:
        links: dict[RequirementKey, tuple[str, ...]] = {}
        for raw_key, raw_refs in data.items():
            if not isinstance(raw_refs, list):
                raise ValueError(f"{path}.{raw_key}: expected array of evidence ids")
            links[RequirementKey.parse(raw_key)] = tuple(
                _as_ref(ref, f"{path}.{raw_key}") for ref in raw_refs
            )
        return cls(links)


def _as_ref(ref: object, path: str = "evidence id") -> str:
    if not isinstance(ref, str) or not ref.strip():
        raise ValueError(f"{path}: evidence id must be a non-empty string, got {ref!r}")
    return ref.strip()


__all__ = ["EvidenceLinkRegistry", "EvidenceLookup"]
