"""
Deterministic business rules for Gold anomalies.

Everything here is a pure function of its inputs so Gold records are
reproducible across re-runs.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from medallion.utils.helpers import truncate_title
from schemas.gold import CriticalityLevel

# Lower bound of criticite for each level, checked from the top down
LEVEL_THRESHOLDS: Tuple[Tuple[int, CriticalityLevel], ...] = (
    (11, CriticalityLevel.CRITICAL),
    (8, CriticalityLevel.HIGH),
    (4, CriticalityLevel.MEDIUM),
)

SEVERITY_BY_LEVEL: Dict[CriticalityLevel, str] = {
    CriticalityLevel.CRITICAL: 'critical',
    CriticalityLevel.HIGH: 'high',
    CriticalityLevel.MEDIUM: 'medium',
    CriticalityLevel.LOW: 'low',
}

PRIORITY_BY_LEVEL: Dict[CriticalityLevel, str] = {
    CriticalityLevel.CRITICAL: 'P1',
    CriticalityLevel.HIGH: 'P2',
    CriticalityLevel.MEDIUM: 'P3',
    CriticalityLevel.LOW: 'P4',
}

SLA_HOURS_BY_SEVERITY: Dict[str, int] = {
    'critical': 4,
    'high': 24,
    'medium': 72,
    'low': 168,
}
DEFAULT_SLA_HOURS = 72

# First matching rule wins
CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ('mechanical', ('turbine', 'rotor')),
    ('electrical', ('électrique', 'electrique', 'electric', 'moteur')),
    ('hydraulic', ('hydraulique', 'pompe', 'valve')),
    ('instrumentation', ('capteur', 'sensor', 'mesure')),
    ('control', ('contrôle', 'controle', 'control', 'régulation', 'regulation')),
)
DEFAULT_CATEGORY = 'mechanical'

TITLE_MAX_LENGTH = 100
TITLE_MIN_BREAK = 50


def compute_criticite(reliability: int, availability: int, process_safety: int) -> int:
    return reliability + availability + process_safety


def classify_level(criticite: int) -> CriticalityLevel:
    """
    Bucket a criticite sum.

    >= 11 Critical, >= 8 High, >= 4 Medium, otherwise Low.
    """
    for threshold, level in LEVEL_THRESHOLDS:
        if criticite >= threshold:
            return level
    return CriticalityLevel.LOW


def severity_for(level: CriticalityLevel) -> str:
    return SEVERITY_BY_LEVEL[level]


def priority_for(level: CriticalityLevel) -> str:
    return PRIORITY_BY_LEVEL[level]


def sla_hours_for(severity: str) -> int:
    return SLA_HOURS_BY_SEVERITY.get(severity, DEFAULT_SLA_HOURS)


def due_date_for(detected_at: datetime, sla_hours: int) -> datetime:
    return detected_at + timedelta(hours=sla_hours)


def categorize(system: Optional[str], description: str) -> str:
    """Keyword classification over the system label and description."""
    text = f'{system or ""} {description}'.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def make_title(description: str) -> str:
    return truncate_title(description, TITLE_MAX_LENGTH, TITLE_MIN_BREAK)


def format_code(prefix: str, year: int, sequence: int) -> str:
    """'ABO', 2024, 7 -> 'ABO-2024-007'"""
    return f'{prefix}-{year}-{sequence:03d}'
