"""
CSV ingestion for backlink exports (Semrush and similar tools).

Three steps, all free of HTTP and database concerns:
1) tokenize the raw text into rows (comma or TAB, quote aware)
2) map each data row onto the canonical fields through a header alias table
3) normalize: derive source_domain from source_url, reject broken rows

parse_backlinks_csv() chains them and finishes with spam filter + dedup.

Known limitation: doubled quotes ("") inside a quoted field are not
unescaped; a quote character always toggles the quoted state.
"""
import ipaddress
import logging
import re
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from .errors import ParseError
from .filters import DEFAULT_SPAM_THRESHOLD, filter_and_deduplicate
from .schemas import BacklinkField, BacklinkRecord

logger = logging.getLogger(__name__)

# canonical field -> accepted header names, already lower-case and space-collapsed
HEADER_ALIASES: Dict[BacklinkField, Tuple[str, ...]] = {
    BacklinkField.PAGE_ASCORE: ('page ascore', 'page_ascore', 'authority score', 'authority_score', 'domain authority', 'da'),
    BacklinkField.SOURCE_URL: ('source url', 'source_url', 'url'),
    BacklinkField.TARGET_URL: ('target url', 'target_url'),
    BacklinkField.EXTERNAL_LINKS: ('external links', 'external_links'),
    BacklinkField.IS_NOFOLLOW: ('nofollow',),
    BacklinkField.FIRST_SEEN: ('first seen', 'first_seen'),
    BacklinkField.LAST_SEEN: ('last seen', 'last_seen'),
}

INTEGER_FIELDS = (BacklinkField.PAGE_ASCORE, BacklinkField.EXTERNAL_LINKS)
DATE_FIELDS = (BacklinkField.FIRST_SEEN, BacklinkField.LAST_SEEN)
DATE_FORMATS = ('%Y-%m-%d', '%Y/%m/%d', '%d.%m.%Y', '%m/%d/%Y', '%b %d, %Y', '%d %b %Y')

_WHITESPACE = re.compile(r'\s+')
_LEADING_INT = re.compile(r'^[+-]?\d+')
_HOSTNAME = re.compile(r'^[a-z0-9_-]+(\.[a-z0-9_-]+)*\.?$')


# -----------------------
# Tokenizer
# -----------------------

def detect_delimiter(first_line: str) -> str:
    return '\t' if '\t' in first_line else ','


def split_line(line: str, delimiter: str) -> List[str]:
    tokens = []
    current = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            tokens.append(''.join(current).strip())
            current = []
        else:
            current.append(char)
    tokens.append(''.join(current).strip())
    return tokens


def tokenize(text: str) -> List[List[str]]:
    """Split CSV text into rows of trimmed tokens; row 0 is the header."""
    text = text.strip()
    if not text:
        return []
    lines = text.split('\n')
    delimiter = detect_delimiter(lines[0])
    logger.info("Detected delimiter: %s", 'TAB' if delimiter == '\t' else 'COMMA')
    return [split_line(line, delimiter) for line in lines]


# -----------------------
# Column mapper
# -----------------------

def normalize_header(header: str) -> str:
    return _WHITESPACE.sub(' ', header).strip().lower()


def resolve_columns(headers: Sequence[str]) -> Dict[BacklinkField, int]:
    """Return the column index for every canonical field found in the header row."""
    normalized = [normalize_header(h) for h in headers]
    columns = {}
    for field, aliases in HEADER_ALIASES.items():
        for index, header in enumerate(normalized):
            if header in aliases:
                columns[field] = index
                break
    return columns


def parse_int(value: str) -> int:
    match = _LEADING_INT.match(value.strip())
    return int(match.group(0)) if match else 0


def parse_nofollow(value: str) -> bool:
    return value.strip().upper() == 'TRUE'


def parse_date(value: str) -> Optional[date]:
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def _valid_host(host: str) -> bool:
    if ':' in host:
        try:
            ipaddress.ip_address(host)
        except ValueError:
            return False
        return True
    try:
        ascii_host = host.encode('idna').decode('ascii')
    except UnicodeError:
        return False
    return bool(_HOSTNAME.match(ascii_host))


def extract_domain(url: str) -> str:
    """Host part of an absolute URL; raises ParseError for anything else."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
        # raises on a non-numeric or out-of-range port
        parts.port
    except ValueError as e:
        raise ParseError(f'Invalid source URL: {url}', error=str(e))
    if not parts.scheme or not host:
        raise ParseError(f'Source URL is not absolute: {url}')
    if not _valid_host(host):
        raise ParseError(f'Invalid host in source URL: {url}')
    return host


def map_row(headers: Sequence[str], row: Sequence[str], today: Optional[date] = None,
            columns: Optional[Dict[BacklinkField, int]] = None) -> BacklinkRecord:
    """
    Map one data row to a BacklinkRecord.

    Raises ParseError when source_url is missing or is not an absolute URL.
    Integer cells that do not parse become 0; missing dates become `today`.
    """
    if columns is None:
        columns = resolve_columns(headers)
    today = today or date.today()

    values = {}
    for field, index in columns.items():
        if index < len(row) and row[index]:
            values[field] = row[index].replace('"', '').strip()

    source_url = values.get(BacklinkField.SOURCE_URL)
    if not source_url:
        raise ParseError('Row has no source URL')

    return BacklinkRecord(
        source_url=source_url,
        source_domain=extract_domain(source_url),
        target_url=values.get(BacklinkField.TARGET_URL, ''),
        page_ascore=parse_int(values.get(BacklinkField.PAGE_ASCORE, '')),
        external_links=parse_int(values.get(BacklinkField.EXTERNAL_LINKS, '')),
        is_nofollow=parse_nofollow(values.get(BacklinkField.IS_NOFOLLOW, '')),
        first_seen=parse_date(values.get(BacklinkField.FIRST_SEEN, '')) or today,
        last_seen=parse_date(values.get(BacklinkField.LAST_SEEN, '')) or today,
    )


def map_rows(rows: Sequence[Sequence[str]], today: Optional[date] = None) -> List[BacklinkRecord]:
    """Map every data row after the header, silently skipping rows that fail to parse."""
    if not rows:
        return []
    headers = rows[0]
    logger.info("CSV headers: %s", list(headers))
    columns = resolve_columns(headers)

    records = []
    rejected = 0
    for line_no, row in enumerate(rows[1:], start=2):
        try:
            records.append(map_row(headers, row, today=today, columns=columns))
        except ParseError as e:
            rejected += 1
            logger.debug("Skipping line %d: %s", line_no, e.message)
    logger.info("Mapped %d rows, rejected %d", len(records), rejected)
    return records


def parse_backlinks_csv(text: str, threshold: int = DEFAULT_SPAM_THRESHOLD,
                        prefer_fewer_external_links: bool = True,
                        today: Optional[date] = None) -> List[BacklinkRecord]:
    rows = tokenize(text)
    records = map_rows(rows, today=today)
    batch = filter_and_deduplicate(records, threshold, prefer_fewer_external_links)
    logger.info("%d backlinks left after filtering and deduplication", len(batch))
    return batch


def decode_upload(raw: bytes) -> str:
    return raw.decode('utf-8-sig', errors='replace')
