import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List

from ..errors import ParseError

logger = logging.getLogger(__name__)

# A first row containing any of these words (case-insensitive) is a header.
HEADER_KEYWORDS = frozenset({
    "company", "position", "location", "status", "date", "salary", "notes",
    "contact", "email", "website", "tags", "priority", "title", "employer",
})

# Used when the file has no header row; extra columns become "Column N".
DEFAULT_HEADERS = ["Company", "Position", "Location", "Applied Date", "Status", "Notes"]

_WORD = re.compile(r"[^\W\d_]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])")


@dataclass
class ParsedCSV:
    headers: List[str]
    rows: List[Dict[str, str]] = field(default_factory=list)
    has_header_row: bool = True
    dropped_empty_rows: int = 0
    # Data rows (0-based) that had more cells than the header; the extra values were dropped.
    truncated_rows: List[int] = field(default_factory=list)


def extract_raw_csv_rows(text: str) -> List[List[str]]:
    """
    Tokenize CSV text into rows of string cells without assuming a header.

    Quoted fields may contain delimiters and newlines. Blank lines are
    skipped; rows keep whatever number of cells they have.

    Raises:
        ParseError: if the text is empty or cannot be tokenized
    """
    reader = csv.reader(io.StringIO(text), strict=True)
    try:
        raw_rows = [row for row in reader if row]
    except csv.Error as e:
        logger.error(f"CSV tokenizing failed near line {reader.line_num}: {e}")
        raise ParseError(f"Malformed CSV near line {reader.line_num}: {e}") from e

    if not raw_rows:
        raise ParseError("CSV file is empty")
    return raw_rows


def detect_csv_header(first_row: List[str]) -> bool:
    """
    Decide whether the first row is a header by looking for known field keywords.

    Args:
        first_row: Cells of the first non-blank row

    Returns:
        True if a cell contains a known field keyword as a whole word
    """
    for cell in first_row:
        words = _WORD.findall(_CAMEL_BOUNDARY.sub(" ", str(cell)).casefold())
        if HEADER_KEYWORDS.intersection(words):
            return True
    return False


def build_headers(cells: List[str], has_header_row: bool) -> List[str]:
    """Clean header cells (or synthesize defaults) and make the names unique."""
    headers: List[str] = []
    seen: Dict[str, int] = {}

    for index, cell in enumerate(cells):
        if has_header_row:
            name = str(cell).strip() or f"Column {index + 1}"
        else:
            name = DEFAULT_HEADERS[index] if index < len(DEFAULT_HEADERS) else f"Column {index + 1}"

        count = seen.get(name, 0) + 1
        seen[name] = count
        headers.append(name if count == 1 else f"{name} ({count})")

    return headers


def parse_csv_text(text: str) -> ParsedCSV:
    """
    Parse decoded CSV text into headers and raw rows.

    Rows are dictionaries keyed by header in column order; rows whose cells
    are all blank are dropped. Short rows are padded with empty strings and
    long rows are cut to the header width, so a stray trailing delimiter
    never fails the file.

    Raises:
        ParseError: for input the tokenizer cannot read, e.g. an unterminated quote
    """
    raw_rows = extract_raw_csv_rows(text)

    has_header_row = detect_csv_header(raw_rows[0])
    headers = build_headers(raw_rows[0], has_header_row)
    data_rows = raw_rows[1:] if has_header_row else raw_rows
    width = len(headers)

    rows: List[Dict[str, str]] = []
    dropped = 0
    truncated: List[int] = []
    for values in data_rows:
        if not any(value.strip() for value in values):
            dropped += 1
            continue
        if len(values) > width:
            extra = values[width:]
            if any(value.strip() for value in extra):
                truncated.append(len(rows))
                logger.warning(
                    f"Row {len(rows) + 1} has {len(values)} fields, expected {width}; dropped extra values {extra}"
                )
            values = values[:width]
        elif len(values) < width:
            values = values + [""] * (width - len(values))
        rows.append(dict(zip(headers, values)))

    if has_header_row:
        logger.info(f"Processed CSV with header: {len(rows)} rows, columns: {headers}")
    else:
        logger.info(f"Processed CSV without header: {len(rows)} rows, generated columns: {headers}")
    if dropped:
        logger.debug("Dropped %d empty rows", dropped)

    return ParsedCSV(
        headers=headers,
        rows=rows,
        has_header_row=has_header_row,
        dropped_empty_rows=dropped,
        truncated_rows=truncated,
    )
