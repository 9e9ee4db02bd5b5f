"""
Spam filtering and per-domain deduplication of one upload batch.

Both stages are pure: they never mutate the incoming records and always
return the same representatives for the same input list.
"""
import logging
from typing import Dict, Iterable, List

from .schemas import BacklinkRecord

logger = logging.getLogger(__name__)

DEFAULT_SPAM_THRESHOLD = 3000


def filter_spam(records: Iterable[BacklinkRecord], threshold: int = DEFAULT_SPAM_THRESHOLD) -> List[BacklinkRecord]:
    """Drop rows whose external link count exceeds `threshold`, whatever their authority."""
    kept = []
    for record in records:
        if record.external_links > threshold:
            logger.debug("Dropping link-farm row %s (external links: %d)", record.source_domain, record.external_links)
            continue
        kept.append(record)
    return kept


def _outranks(candidate: BacklinkRecord, current: BacklinkRecord, prefer_fewer_external_links: bool) -> bool:
    if candidate.page_ascore != current.page_ascore:
        return candidate.page_ascore > current.page_ascore
    if prefer_fewer_external_links:
        return candidate.external_links < current.external_links
    return False


def deduplicate_by_domain(records: Iterable[BacklinkRecord], prefer_fewer_external_links: bool = True) -> List[BacklinkRecord]:
    """
    Keep one record per source_domain.

    Highest page_ascore wins; on a tie the lower external_links count wins
    (when enabled); a full tie keeps the first record seen. Output follows
    the order in which each domain first appeared.
    """
    by_domain: Dict[str, BacklinkRecord] = {}
    for record in records:
        existing = by_domain.get(record.source_domain)
        if existing is None or _outranks(record, existing, prefer_fewer_external_links):
            by_domain[record.source_domain] = record
    return list(by_domain.values())


def filter_and_deduplicate(records: Iterable[BacklinkRecord], threshold: int = DEFAULT_SPAM_THRESHOLD,
                           prefer_fewer_external_links: bool = True) -> List[BacklinkRecord]:
    survivors = filter_spam(records, threshold)
    logger.info("%d rows left after spam filter", len(survivors))
    return deduplicate_by_domain(survivors, prefer_fewer_external_links)
