"""Conflict information and the all-or-nothing resolution protocol."""

from __future__ import annotations

from disputedesk.core.disputes.schemas import ConflictInfo, Dispute

# Bookkeeping fields that always differ between versions.
IGNORED_FIELDS = frozenset({"version", "updated_at"})


def conflicted_fields(local: Dispute, server: Dispute) -> list[str]:
    local_data = local.model_dump()
    server_data = server.model_dump()
    return sorted(
        name
        for name in server_data
        if name not in IGNORED_FIELDS and local_data.get(name) != server_data[name]
    )


def build_conflict_info(local: Dispute, server: Dispute) -> ConflictInfo:
    return ConflictInfo(
        dispute_id=server.id,
        local_version=local.version,
        server_version=server.version,
        server_data=server.model_dump(mode="json"),
        conflicted_fields=conflicted_fields(local, server),
    )
