"""Content hashing for hypothesis deduplication.

Two candidates are duplicates when their normalized title and summary hash
identically. Normalization ignores case, Unicode width variants,
punctuation and whitespace so cosmetic differences between runs do not
defeat deduplication.

Key functions:
- normalize_content(): canonical text used for hashing
- compute_content_hash(): SHA-256 of the normalized title + summary
- partition_duplicates(): split candidates into kept and dropped
"""

import hashlib
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Iterable, List, Set, Tuple

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[\W_]+", re.UNICODE)


@dataclass
class Candidate:
    """One hypothesis parsed from divergent output."""

    title: str
    summary: str = ""
    content_hash: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = compute_content_hash(self.title, self.summary)


def normalize_content(text: str) -> str:
    """Return the canonical form of ``text`` used for hashing."""
    folded = unicodedata.normalize("NFKC", text or "").casefold()
    return _NON_WORD.sub(" ", folded).strip()


def compute_content_hash(title: str, summary: str = "") -> str:
    """Compute SHA-256 of the normalized title and summary.

    Returns:
        SHA-256 hash hex string (64 characters)
    """
    canonical = f"{normalize_content(title)}\n{normalize_content(summary)}"
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def partition_duplicates(
    candidates: Iterable[Candidate],
    existing_hashes: Set[str],
) -> Tuple[List[Candidate], List[Candidate]]:
    """Split ``candidates`` into (kept, dropped).

    A candidate is dropped when its hash is in ``existing_hashes`` or
    repeats an earlier candidate in the same batch.
    """
    seen = set(existing_hashes)
    kept: List[Candidate] = []
    dropped: List[Candidate] = []
    for candidate in candidates:
        if candidate.content_hash in seen:
            dropped.append(candidate)
            logger.debug("Dropping duplicate candidate %r", candidate.title)
            continue
        seen.add(candidate.content_hash)
        kept.append(candidate)
    return kept, dropped
