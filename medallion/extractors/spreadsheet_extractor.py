"""
Extractor for uploaded anomaly spreadsheets (CSV and Excel workbooks).

Turns raw upload bytes into an ordered list of rows keyed by the file's own
header labels. Problems with a single row never abort the parse: the row is
emitted with an error marker and the caller decides what to do with it. Only
problems with the file as a whole raise IngestionError.
"""
import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

import pandas as pd

from medallion.config.settings import settings
from medallion.errors import IngestionError, RowParseError
from medallion.extractors.base_extractor import BaseExtractor
from medallion.extractors.row_view import HeaderMap

CSV = 'csv'
EXCEL = 'excel'

FORMAT_ALIASES = {
    'csv': CSV,
    '.csv': CSV,
    'text/csv': CSV,
    'application/csv': CSV,
    'text/plain': CSV,
    'xlsx': EXCEL,
    '.xlsx': EXCEL,
    'xls': EXCEL,
    '.xls': EXCEL,
    'excel': EXCEL,
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet': EXCEL,
    'application/vnd.ms-excel': EXCEL,
}

EXTRA_COLUMNS_KEY = '__extra__'

# Largest value csv.field_size_limit accepts on every platform
MAX_FIELD_SIZE = 2 ** 31 - 1


def resolve_format(format_hint: str) -> str:
    """Map a declared format (extension, short name or MIME type) to CSV or EXCEL."""
    key = (format_hint or '').strip().lower().split(';')[0].strip()
    if key not in FORMAT_ALIASES:
        raise IngestionError(f'Unsupported format: {format_hint!r}')
    return FORMAT_ALIASES[key]


def format_from_filename(filename: str) -> str:
    """Guess the format hint from a file name extension."""
    suffix = '.' + filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    return resolve_format(suffix or 'csv')


@dataclass
class ParsedRow:
    """One data row. `error` is set when the row is malformed."""
    line_number: int
    values: Dict[str, str]
    extra: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None

    def to_error(self) -> RowParseError:
        return RowParseError(self.error or 'malformed row', line_number=self.line_number)


@dataclass
class ParseResult:
    """Outcome of parsing one uploaded file."""
    source_file: str
    format: str
    headers: List[str]
    rows: List[ParsedRow]

    @property
    def valid_rows(self) -> List[ParsedRow]:
        return [r for r in self.rows if r.is_valid]

    @property
    def error_rows(self) -> List[ParsedRow]:
        return [r for r in self.rows if not r.is_valid]

    @property
    def header_map(self) -> HeaderMap:
        return HeaderMap(self.headers)


def _split_lines(text: str) -> List[str]:
    """Split on line feeds only, keeping line endings. Bare CR files are split on CR."""
    separator = '\n' if '\n' in text or '\r' not in text else '\r'
    parts = text.split(separator)
    lines = [part + separator for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


class _LineTracker:
    """Line iterator that remembers what the csv reader consumed."""

    def __init__(self, lines: Sequence[str]):
        self._lines = lines
        self.position = 0

    def __iter__(self):
        return self

    def __next__(self) -> str:
        if self.position >= len(self._lines):
            raise StopIteration
        line = self._lines[self.position]
        self.position += 1
        return line

    def consumed(self, start: int) -> str:
        return ''.join(self._lines[start:self.position])


class SpreadsheetExtractor(BaseExtractor):
    """Parse anomaly uploads in CSV or Excel format."""

    def __init__(self, max_bytes: Optional[int] = None):
        """
        Initialize spreadsheet extractor.

        Args:
            max_bytes: Reject uploads larger than this (defaults to settings.MAX_UPLOAD_BYTES)
        """
        super().__init__('spreadsheet', max_bytes if max_bytes is not None else settings.MAX_UPLOAD_BYTES)

    def extract(self, content: bytes, format_hint: str = CSV, source_file: str = 'upload.csv') -> ParseResult:
        """
        Parse raw upload bytes.

        Args:
            content: File content
            format_hint: Declared format ('csv', 'text/csv', 'xlsx', MIME type...)
            source_file: Original file name (provenance only)

        Returns:
            ParseResult with rows in file order

        Raises:
            IngestionError: If the file as a whole cannot be read
        """
        fmt = resolve_format(format_hint)
        self.check_upload(content, source_file)

        self.logger.info(f'Parsing {source_file} as {fmt} ({len(content)} bytes)')
        if fmt == CSV:
            headers, rows = self._parse_csv(content, source_file)
        else:
            headers, rows = self._parse_excel(content, source_file)

        result = ParseResult(source_file=source_file, format=fmt, headers=headers, rows=rows)
        for row in result.error_rows:
            self.logger.warning(f'{source_file} line {row.line_number}: {row.error}')
        self.log_extraction(source_file, len(rows), len(result.error_rows))
        return result

    def validate_extraction(self, result: ParseResult) -> bool:
        """
        Check that the header exposes the columns the pipeline needs.

        Missing optional columns are only logged; the pipeline defaults them.
        """
        header_map = result.header_map
        missing = header_map.missing_fields
        if missing:
            self.logger.info(f'Columns not found in {result.source_file}: {missing}')
        return header_map.column_for('description') is not None and \
            header_map.column_for('equipment_id') is not None

    # ------------------------------------------------------------------
    # CSV
    # ------------------------------------------------------------------

    def _decode(self, content: bytes, source_file: str) -> Tuple[List[str], Set[int]]:
        """
        Decode bytes into lines.

        Returns:
            Tuple of (lines with line endings, 1-based numbers of undecodable lines)
        """
        if content.startswith((b'\xff\xfe', b'\xfe\xff')):
            try:
                return _split_lines(content.decode('utf-16')), set()
            except UnicodeDecodeError as e:
                raise IngestionError(f'Unreadable UTF-16 content: {e}', source_file=source_file)

        if b'\x00' in content:
            raise IngestionError('File looks binary, not delimited text', source_file=source_file)

        try:
            return _split_lines(content.decode('utf-8-sig')), set()
        except UnicodeDecodeError:
            self.logger.warning(f'{source_file} is not valid UTF-8, decoding line by line')

        lines: List[str] = []
        bad_lines: Set[int] = set()
        raw_lines = content.split(b'\n')
        raw_lines = [line + b'\n' for line in raw_lines[:-1]] + ([raw_lines[-1]] if raw_lines[-1] else [])
        for number, raw in enumerate(raw_lines, start=1):
            if number == 1 and raw.startswith(b'\xef\xbb\xbf'):
                raw = raw[3:]
            for encoding in ('utf-8', 'cp1252'):
                try:
                    lines.append(raw.decode(encoding))
                    break
                except UnicodeDecodeError:
                    continue
            else:
                lines.append(raw.decode('utf-8', errors='replace'))
                bad_lines.add(number)
        return lines, bad_lines

    def _read_records(self, lines: List[str]) -> Iterator[Tuple[int, int, List[str], Optional[str]]]:
        """
        Yield (first_line, last_line, cells, error) for each CSV record.

        Records are read strictly; one that breaks the quoting rules is
        re-read leniently and flagged.
        """
        tracker = _LineTracker(lines)
        reader = csv.reader(tracker, delimiter=',', quotechar='"', doublequote=True, strict=True)
        while True:
            start = tracker.position
            try:
                cells = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                raw = tracker.consumed(start)
                lenient = csv.reader(io.StringIO(raw), delimiter=',', quotechar='"', strict=False)
                try:
                    for cells in lenient:
                        yield start + 1, tracker.position, cells, f'Malformed quoting: {e}'
                except csv.Error as lenient_error:
                    # Unreadable even leniently; report the raw cells
                    cells = raw.rstrip('\r\n').split(',')
                    yield start + 1, tracker.position, cells, f'Unreadable record: {lenient_error}'
                continue
            yield start + 1, tracker.position, cells, None

    def _parse_csv(self, content: bytes, source_file: str) -> Tuple[List[str], List[ParsedRow]]:
        field_limit = min(self.max_bytes or MAX_FIELD_SIZE, MAX_FIELD_SIZE)
        if csv.field_size_limit() < field_limit:
            csv.field_size_limit(field_limit)
        lines, bad_lines = self._decode(content, source_file)

        headers: Optional[List[str]] = None
        rows: List[ParsedRow] = []
        for first, last, cells, error in self._read_records(lines):
            if not any(c.strip() for c in cells):
                continue  # blank line

            undecodable = any(n in bad_lines for n in range(first, last + 1))
            if headers is None:
                if error or undecodable:
                    raise IngestionError(
                        f'Unreadable header row at line {first}', source_file=source_file
                    )
                headers = self._clean_headers(cells)
                continue

            if undecodable and error is None:
                error = 'Undecodable characters (neither UTF-8 nor Windows-1252)'
            rows.append(self._build_row(first, headers, cells, error))

        if headers is None:
            raise IngestionError('No header row found', source_file=source_file)
        return headers, rows

    # ------------------------------------------------------------------
    # Excel
    # ------------------------------------------------------------------

    def _parse_excel(self, content: bytes, source_file: str) -> Tuple[List[str], List[ParsedRow]]:
        try:
            df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object)
        except Exception as e:
            raise IngestionError(f'Cannot open workbook: {e}', source_file=source_file) from e

        headers: Optional[List[str]] = None
        rows: List[ParsedRow] = []
        for position, raw_cells in enumerate(df.itertuples(index=False, name=None), start=1):
            cells = [self._cell_to_text(v) for v in raw_cells]
            if not any(c.strip() for c in cells):
                continue
            if headers is None:
                headers = self._clean_headers(cells)
                continue

            rows.append(self._build_row(position, headers, cells, None))

        if headers is None:
            raise IngestionError('Workbook has no header row', source_file=source_file)
        return headers, rows

    @staticmethod
    def _cell_to_text(value: Any) -> str:
        """Render one Excel cell as the string a CSV export would contain."""
        if value is None:
            return ''
        if isinstance(value, float):
            if pd.isna(value):
                return ''
            if value.is_integer():
                return str(int(value))
            return str(value)
        if isinstance(value, (pd.Timestamp, datetime)):
            if pd.isna(value):
                return ''
            return value.strftime('%Y-%m-%d %H:%M:%S')
        if isinstance(value, date):
            return value.strftime('%Y-%m-%d')
        return str(value)

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_headers(cells: List[str]) -> List[str]:
        """Trim header labels, name blank ones and disambiguate duplicates."""
        headers: List[str] = []
        seen: Dict[str, int] = {}
        for idx, cell in enumerate(cells):
            label = cell.strip().lstrip('\ufeff') or f'column_{idx + 1}'
            if label in seen:
                seen[label] += 1
                label = f'{label}_{seen[label]}'
            else:
                seen[label] = 1
            headers.append(label)
        return headers

    @staticmethod
    def _build_row(line_number: int, headers: List[str], cells: List[str], error: Optional[str]) -> ParsedRow:
        """Pad short rows, set aside cells beyond the header."""
        values = {h: (cells[i] if i < len(cells) else '') for i, h in enumerate(headers)}
        extra = [c for c in cells[len(headers):] if c.strip()]
        return ParsedRow(line_number=line_number, values=values, extra=extra, error=error)
