"""Read-time deduplication of stored file versions.

Filenames are not unique keys in storage: every re-ingest writes new records.
Uniqueness is recovered here, and every surface (chat context, document
listing, plan listing) goes through ``deduplicate()``.

Winner per filename: the first match seen, replaced by a candidate that is
complete while the winner is not, or by a newer candidate when both are
incomplete. Two complete records never replace each other.
"""

from __future__ import annotations

from codecontext.db.models import Match


def _replaces(candidate: Match, winner: Match) -> bool:
    if candidate.is_complete and not winner.is_complete:
        return True
    return (
        not winner.is_complete
        and not candidate.is_complete
        and candidate.timestamp > winner.timestamp
    )


def deduplicate(matches: list[Match]) -> list[Match]:
    """Collapse *matches* to one record per filename; matches without one are dropped.

    Output follows first-seen filename order.
    """
    winners: dict[str, Match] = {}
    for match in matches:
        filename = match.filename
        if not filename:
            continue
        current = winners.get(filename)
        if current is None or _replaces(match, current):
            winners[filename] = match
    return list(winners.values())
