"""Multi-value author splitting and book identity derivation.

Media indexes report all authors of a track as one string ("Alice & Bob").
This module splits those strings into individual authors with stable ids,
links every track to its authors, and groups tracks into books keyed by
``(book title, resolved author)``.

Id stability across passes comes from the carried-forward maps: author names
keep the id they were given in an earlier pass, and book keys keep their book
id. New names and keys get fresh ids from counters above anything seen.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ...models.models import AuthorRecord, BookRecord, CrossRefRecord, TrackRecord

logger = logging.getLogger(__name__)

BookKey = Tuple[str, str]


def split_authors(raw: str, delimiters: Sequence[str]) -> List[str]:
    """Split a combined author string into individual names.

    Args:
        raw: Author string as reported by the index
        delimiters: Separator strings; an empty list disables splitting

    Returns:
        Trimmed, non-empty names in order of appearance. If nothing usable
        remains the trimmed raw string is returned as the only name.
    """
    parts = [raw]
    for delimiter in delimiters:
        if not delimiter:
            continue
        parts = [piece for part in parts for piece in part.split(delimiter)]

    names = [part.strip() for part in parts if part.strip()]
    if names:
        return names
    fallback = raw.strip()
    return [fallback] if fallback else []


@dataclass
class SplitResult:
    """Outcome of splitting one batch of tracks."""

    tracks: List[TrackRecord]
    books: List[BookRecord]
    authors: List[AuthorRecord]
    cross_refs: List[CrossRefRecord]
    name_to_id: Dict[str, int] = field(default_factory=dict)
    book_keys: Dict[BookKey, int] = field(default_factory=dict)


class AuthorSplitter:
    """Splits author strings and derives authors, books and cross-refs."""

    def process(
        self,
        tracks: Sequence[TrackRecord],
        delimiters: Sequence[str],
        group_by_book_author: bool,
        prior_name_to_id: Optional[Mapping[str, int]] = None,
        max_prior_id: int = 0,
        prior_image_urls: Optional[Mapping[int, Optional[str]]] = None,
        prior_book_keys: Optional[Mapping[BookKey, int]] = None,
    ) -> SplitResult:
        """Process one batch of merged tracks.

        Args:
            tracks: Tracks to split, after field-level merge
            delimiters: Author separator strings
            group_by_book_author: Prefer the book-level author for book identity
            prior_name_to_id: Author name -> id from earlier passes
            max_prior_id: Highest author id ever assigned
            prior_image_urls: Author id -> image URL to carry over
            prior_book_keys: (book title, resolved author) -> book id from
                earlier passes

        Returns:
            SplitResult with corrected tracks and derived entities
        """
        name_to_id: Dict[str, int] = dict(prior_name_to_id or {})
        image_urls = prior_image_urls or {}
        next_author_id = max([max_prior_id, *name_to_id.values()]) + 1

        book_keys: Dict[BookKey, int] = dict(prior_book_keys or {})
        claimed_book_ids: Dict[int, BookKey] = {v: k for k, v in book_keys.items()}
        next_book_id = max([0, *book_keys.values(), *(t.book_id for t in tracks)]) + 1

        split_cache: Dict[str, List[str]] = {}
        cross_refs: List[CrossRefRecord] = []
        author_track_counts: Dict[int, int] = {}
        referenced_ids: Set[int] = set()
        corrected: List[TrackRecord] = []
        identity_authors: Dict[int, str] = {}

        for track in tracks:
            raw = track.author_name
            if raw not in split_cache:
                split_cache[raw] = split_authors(raw, delimiters)
            names = list(OrderedDict.fromkeys(split_cache[raw]))

            for name in names:
                if name not in name_to_id:
                    name_to_id[name] = next_author_id
                    next_author_id += 1

            if names:
                primary_name = names[0]
                primary_id = name_to_id[primary_name]
            else:
                primary_name = raw.strip()
                primary_id = track.author_id

            for index, name in enumerate(names):
                author_id = name_to_id[name]
                cross_refs.append(
                    CrossRefRecord(track_id=track.id, author_id=author_id, is_primary=index == 0)
                )
                author_track_counts[author_id] = author_track_counts.get(author_id, 0) + 1
                referenced_ids.add(author_id)

            book_author = (track.book_author or "").strip()
            if group_by_book_author and book_author:
                identity_author = book_author
            else:
                identity_author = primary_name

            key = (track.book_name.strip(), identity_author)
            book_id = book_keys.get(key)
            if book_id is None:
                book_id = track.book_id
                if book_id in claimed_book_ids:
                    # Index id already names a different book; mint a new one
                    book_id = next_book_id
                    next_book_id += 1
                book_keys[key] = book_id
                claimed_book_ids[book_id] = key

            identity_authors.setdefault(book_id, identity_author)
            corrected.append(
                track.model_copy(
                    update={
                        "author_id": primary_id,
                        "author_name": primary_name,
                        "book_id": book_id,
                    }
                )
            )

        books = self._build_books(corrected, identity_authors, name_to_id)

        id_to_name = {v: k for k, v in name_to_id.items()}
        authors = [
            AuthorRecord(
                id=author_id,
                name=id_to_name[author_id],
                track_count=author_track_counts.get(author_id, 0),
                image_url=image_urls.get(author_id),
            )
            for author_id in sorted(referenced_ids)
        ]

        logger.debug(
            "Split %d tracks into %d authors, %d books, %d links",
            len(corrected),
            len(authors),
            len(books),
            len(cross_refs),
        )
        return SplitResult(
            tracks=corrected,
            books=books,
            authors=authors,
            cross_refs=cross_refs,
            name_to_id=name_to_id,
            book_keys=book_keys,
        )

    @staticmethod
    def _build_books(
        tracks: Sequence[TrackRecord],
        identity_authors: Mapping[int, str],
        name_to_id: Mapping[str, int],
    ) -> List[BookRecord]:
        """Recompute books from the corrected tracks grouped by book id."""
        groups: "OrderedDict[int, List[TrackRecord]]" = OrderedDict()
        for track in tracks:
            groups.setdefault(track.book_id, []).append(track)

        books: List[BookRecord] = []
        for book_id, members in groups.items():
            first = members[0]
            author_name = identity_authors.get(book_id, first.author_name)
            books.append(
                BookRecord(
                    id=book_id,
                    title=first.book_name,
                    author_name=author_name,
                    author_id=name_to_id.get(author_name, 0),
                    cover_uri=next((t.cover_uri for t in members if t.cover_uri), None),
                    track_count=len(members),
                    year=next((t.year for t in members if t.year), 0),
                )
            )
        return books
