"""Unit tests for header aliasing and RowView."""
import pytest

from medallion.extractors.row_view import (
    AVAILABILITY,
    CRITICALITY,
    DETECTION_DATE,
    EQUIPMENT_DESCRIPTION,
    EQUIPMENT_ID,
    RELIABILITY,
    SECTION,
    HeaderMap,
    RowView,
    normalize_header,
)


class TestNormalizeHeader:
    """Test header normalization."""

    @pytest.mark.parametrize('label,expected', [
        ("Date de détéction de l'anomalie", 'date de detection de lanomalie'),
        ('numEquipement', 'num equipement'),
        ('Num_equipement', 'num equipement'),
        ('  Fiabilité   Intégrité ', 'fiabilite integrite'),
        ('process-safety', 'process safety'),
    ])
    def test_normalize(self, label, expected):
        assert normalize_header(label) == expected


class TestHeaderMap:
    """Test canonical field resolution."""

    def test_french_headers(self):
        header_map = HeaderMap([
            'Num_equipement', "Date de détéction de l'anomalie", 'Disponibilté',
            'Fiabilité Intégrité', "Description de l'équipement", 'Section propriétaire',
        ])
        assert header_map.column_for(EQUIPMENT_ID) == 'Num_equipement'
        assert header_map.column_for(DETECTION_DATE) == "Date de détéction de l'anomalie"
        assert header_map.column_for(AVAILABILITY) == 'Disponibilté'
        assert header_map.column_for(RELIABILITY) == 'Fiabilité Intégrité'
        assert header_map.column_for(EQUIPMENT_DESCRIPTION) == "Description de l'équipement"
        assert header_map.column_for(SECTION) == 'Section propriétaire'

    def test_camel_case_and_english_headers(self):
        header_map = HeaderMap(['numEquipement', 'dateDetectionAnomalie', 'Availability', 'Priority'])
        assert header_map.column_for(EQUIPMENT_ID) == 'numEquipement'
        assert header_map.column_for(DETECTION_DATE) == 'dateDetectionAnomalie'
        assert header_map.column_for(AVAILABILITY) == 'Availability'
        assert header_map.column_for(CRITICALITY) == 'Priority'

    def test_alias_priority(self):
        """Criticité wins over Priorité when both are present."""
        header_map = HeaderMap(['Priorité', 'Criticité'])
        assert header_map.column_for(CRITICALITY) == 'Criticité'

    def test_missing_fields(self):
        header_map = HeaderMap(['Description'])
        assert EQUIPMENT_ID in header_map.missing_fields
        assert 'description' not in header_map.missing_fields


class TestRowView:
    """Test typed access to a row."""

    def test_get_trims_and_resolves_aliases(self):
        view = RowView({'Num_equipement': ' P-101 ', 'Disponibilté': '3'})
        assert view.get(EQUIPMENT_ID) == 'P-101'
        assert view.get(AVAILABILITY) == '3'

    @pytest.mark.parametrize('value', ['', '   ', 'null', 'NULL', 'None'])
    def test_blank_and_null_values_are_absent(self, value):
        view = RowView({'Num_equipement': value})
        assert view.get(EQUIPMENT_ID) is None
        assert view.get(EQUIPMENT_ID, 'default') == 'default'
        assert not view.has(EQUIPMENT_ID)

    def test_unknown_column(self):
        view = RowView({'Other': 'x'})
        assert view.get(EQUIPMENT_ID) is None
        assert view.as_dict()[EQUIPMENT_ID] is None
