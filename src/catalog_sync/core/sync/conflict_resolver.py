"""Field-level merge of incoming index records with local catalog records.

Users hand-edit display text more often than the index metadata is wrong, so
most edited fields survive a sync. The exception is the author: when the index
now reports several authors whose first one is exactly the locally stored
name, the incoming combined value wins so the splitter can link the extra
authors.
"""

import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ...models.models import TrackRecord
from ...utils.text import is_blank
from .author_splitter import split_authors

logger = logging.getLogger(__name__)


@dataclass
class MergeStatistics:
    """Counts of local values kept over incoming ones."""

    merged: int = 0
    new: int = 0
    preserved_fields: Dict[str, int] = dataclass_field(default_factory=dict)

    def record(self, field_name: str) -> None:
        """Count one preserved field."""
        self.preserved_fields[field_name] = self.preserved_fields.get(field_name, 0) + 1


class FieldMerger:
    """Applies the asymmetric local-vs-incoming merge rules."""

    @staticmethod
    def should_preserve_author(
        local_author: str,
        incoming_author: str,
        delimiters: Sequence[str],
        rescan_required: bool,
    ) -> bool:
        """Decide whether the locally stored author survives.

        Only compared when no rescan is pending and the local value is a
        non-blank, different string. The local value is kept unless the
        incoming value splits into several names and the first of them
        equals the trimmed local value.
        """
        if rescan_required or is_blank(local_author) or local_author == incoming_author:
            return False

        incoming_names = split_authors(incoming_author, delimiters)
        if len(incoming_names) > 1 and incoming_names[0] == local_author.strip():
            return False
        return True

    def merge(
        self,
        local: TrackRecord,
        incoming: TrackRecord,
        delimiters: Sequence[str],
        rescan_required: bool,
        stats: Optional[MergeStatistics] = None,
    ) -> TrackRecord:
        """Merge one incoming record onto its local counterpart.

        Args:
            local: Record currently stored in the catalog
            incoming: Record freshly built from the index
            delimiters: Author separator strings
            rescan_required: Whether a delimiter/grouping change is pending
            stats: Optional statistics to update

        Returns:
            Incoming record with preserved local fields
        """
        updates: dict = {
            "date_added": local.date_added,
            "annotation": local.annotation,
            "is_favorite": local.is_favorite,
        }

        if not is_blank(local.title) and local.title != incoming.title:
            updates["title"] = local.title
            if stats is not None:
                stats.record("title")

        if not is_blank(local.book_name) and local.book_name != incoming.book_name:
            updates["book_name"] = local.book_name
            if stats is not None:
                stats.record("book_name")

        if self.should_preserve_author(
            local.author_name, incoming.author_name, delimiters, rescan_required
        ):
            updates["author_name"] = local.author_name
            if stats is not None:
                stats.record("author_name")

        if local.category is not None:
            updates["category"] = local.category

        if local.track_number != 0 and local.track_number != incoming.track_number:
            updates["track_number"] = local.track_number
            if stats is not None:
                stats.record("track_number")

        if local.cover_uri is not None:
            updates["cover_uri"] = local.cover_uri

        return incoming.model_copy(update=updates)

    def merge_all(
        self,
        incoming: Sequence[TrackRecord],
        local_by_id: Mapping[int, TrackRecord],
        delimiters: Sequence[str],
        rescan_required: bool,
    ) -> Tuple[List[TrackRecord], MergeStatistics]:
        """Merge a fetched batch against the local snapshot.

        Records without a local counterpart pass through unchanged.
        """
        stats = MergeStatistics()
        merged: List[TrackRecord] = []
        for record in incoming:
            local = local_by_id.get(record.id)
            if local is None:
                stats.new += 1
                merged.append(record)
                continue
            stats.merged += 1
            merged.append(self.merge(local, record, delimiters, rescan_required, stats))

        if stats.preserved_fields:
            logger.debug("Preserved local fields: %s", stats.preserved_fields)
        return merged, stats
