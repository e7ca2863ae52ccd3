"""Source file parsing."""
from medallion.extractors.row_view import HeaderMap, RowView
from medallion.extractors.spreadsheet_extractor import ParsedRow, ParseResult, SpreadsheetExtractor

__all__ = ['HeaderMap', 'RowView', 'ParsedRow', 'ParseResult', 'SpreadsheetExtractor']
