"""
Typed view over a parsed spreadsheet row.

Source files label the same column in many ways (French with or without
accents, English, camelCase, snake_case, typos carried over from the original
templates). All header matching goes through the alias table below.
"""

import re
import unicodedata
from typing import Dict, Iterable, List, Mapping, Optional

from medallion.utils.validators import is_blank

EQUIPMENT_ID = 'equipment_id'
SYSTEM = 'system'
DESCRIPTION = 'description'
DETECTION_DATE = 'detection_date'
EQUIPMENT_DESCRIPTION = 'equipment_description'
SECTION = 'section'
RELIABILITY = 'reliability'
AVAILABILITY = 'availability'
PROCESS_SAFETY = 'process_safety'
CRITICALITY = 'criticality'

# Canonical field -> header aliases, in priority order
FIELD_ALIASES: Dict[str, List[str]] = {
    EQUIPMENT_ID: [
        'Num_equipement', 'Num equipement', 'Numéro équipement', 'numEquipement',
        'Equipment ID', 'equipment_id', 'Equipement',
    ],
    SYSTEM: ['Systeme', 'Système', 'System'],
    DESCRIPTION: ['Description', 'Description anomalie', "Description de l'anomalie"],
    DETECTION_DATE: [
        "Date de détéction de l'anomalie", "Date de détection de l'anomalie",
        'Date Detection Anomalie', 'dateDetectionAnomalie', 'Date de detection',
        'Detection Date', 'Date',
    ],
    EQUIPMENT_DESCRIPTION: [
        "Description de l'équipement", 'Description equipement', 'descriptionEquipement',
        'Equipment Description', 'Equipment Name',
    ],
    SECTION: [
        'Section propriétaire', 'Section proprietaire', 'sectionProprietaire',
        'Section', 'Owner Section', 'Department',
    ],
    RELIABILITY: [
        'Fiabilité Intégrité', 'Fiabilite Integrite', 'fiabiliteIntegrite', 'Fiabilité',
        'Reliability', 'Integrity',
    ],
    AVAILABILITY: ['Disponibilté', 'Disponibilité', 'disponibilite', 'Availability'],
    PROCESS_SAFETY: ['Process Safety', 'processSafety', 'Sécurité procédé'],
    CRITICALITY: ['Criticité', 'criticite', 'Criticality', 'Priorité', 'Priority'],
}

_STRIP_CHARS = re.compile(r"['\"`’]")
_SEPARATORS = re.compile(r'[_\-]+')
_WHITESPACE = re.compile(r'\s+')
_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z])(?=[A-Z])')


def normalize_header(label: str) -> str:
    """
    Canonical comparison form of a header label.

    'Date de détéction de l\\'anomalie' -> 'date de detection de lanomalie'
    'numEquipement' -> 'num equipement'
    """
    text = _CAMEL_BOUNDARY.sub(' ', str(label))
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    text = _STRIP_CHARS.sub('', text.casefold())
    text = _SEPARATORS.sub(' ', text)
    return _WHITESPACE.sub(' ', text).strip()


_NORMALIZED_ALIASES: Dict[str, List[str]] = {
    field: [normalize_header(alias) for alias in aliases]
    for field, aliases in FIELD_ALIASES.items()
}


class HeaderMap:
    """Resolves canonical fields to the actual headers of one source file."""

    def __init__(self, headers: Iterable[str]):
        self.headers = list(headers)
        by_normalized: Dict[str, str] = {}
        for header in self.headers:
            by_normalized.setdefault(normalize_header(header), header)

        self.columns: Dict[str, str] = {}
        for field, aliases in _NORMALIZED_ALIASES.items():
            for alias in aliases:
                if alias in by_normalized:
                    self.columns[field] = by_normalized[alias]
                    break

    def column_for(self, field: str) -> Optional[str]:
        return self.columns.get(field)

    @property
    def missing_fields(self) -> List[str]:
        return [f for f in FIELD_ALIASES if f not in self.columns]


class RowView:
    """
    Read-only access to one row by canonical field name.

    Example:
        view = RowView({'Num_equipement': ' P-101 ', 'Disponibilté': '3'})
        view.get(EQUIPMENT_ID)  # 'P-101'
        view.get(AVAILABILITY)  # '3'
    """

    def __init__(self, values: Mapping[str, str], header_map: Optional[HeaderMap] = None):
        self.values = dict(values)
        self.header_map = header_map or HeaderMap(self.values.keys())

    def get(self, field: str, default: Optional[str] = None) -> Optional[str]:
        """Trimmed value of a canonical field; blank and 'null' values count as absent."""
        column = self.header_map.column_for(field)
        if column is None:
            return default
        value = self.values.get(column)
        if is_blank(value):
            return default
        return str(value).strip()

    def has(self, field: str) -> bool:
        return self.get(field) is not None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {field: self.get(field) for field in FIELD_ALIASES}
