"""Curriculum index - the 30 fixed Juz of the memorization curriculum.

Reference data only; nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.errors import InvalidInput, NotFound

UNIT_COUNT = 30
TOTAL_PAGES = 604


@dataclass(frozen=True)
class CurriculumUnit:
    number: int
    name: str
    start_surah: int
    start_verse: int
    start_page: int
    end_page: int

    @property
    def page_count(self) -> int:
        return self.end_page - self.start_page + 1


# (number, name, start surah, start verse, start page) - Madani mushaf paging
_JUZ_TABLE: list[tuple[int, str, int, int, int]] = [
    (1, "Alif Lam Mim", 1, 1, 1),
    (2, "Sayaqul", 2, 142, 22),
    (3, "Tilka ar-Rusul", 2, 253, 42),
    (4, "Lan Tanalu", 3, 93, 62),
    (5, "Wal Muhsanat", 4, 24, 82),
    (6, "La Yuhibbullah", 4, 148, 102),
    (7, "Wa Idha Samiu", 5, 82, 121),
    (8, "Wa Law Annana", 6, 111, 142),
    (9, "Qal al-Mala", 7, 88, 162),
    (10, "Wa Alamu", 8, 41, 182),
    (11, "Yatadhirun", 9, 93, 201),
    (12, "Wa Ma min Dabbah", 11, 6, 222),
    (13, "Wa Ma Ubarriu", 12, 53, 242),
    (14, "Rubama", 15, 1, 262),
    (15, "Subhana alladhi", 17, 1, 282),
    (16, "Qal Alam", 18, 75, 302),
    (17, "Iqtaraba", 21, 1, 322),
    (18, "Qad Aflaha", 23, 1, 342),
    (19, "Wa Qal alladhina", 25, 21, 362),
    (20, "Amman Khalaqa", 27, 56, 382),
    (21, "Utlu Ma Uhiya", 29, 46, 402),
    (22, "Wa Man Yaqnut", 33, 31, 422),
    (23, "Wa Mali", 36, 28, 442),
    (24, "Fa Man Azlamu", 39, 32, 462),
    (25, "Ilayhi Yuraddu", 41, 47, 482),
    (26, "Ha Mim", 46, 1, 502),
    (27, "Qala Fa Ma Khatbukum", 51, 31, 522),
    (28, "Qad Sami Allah", 58, 1, 542),
    (29, "Tabaraka alladhi", 67, 1, 562),
    (30, "Amma", 78, 1, 582),
]


def _build_units() -> tuple[CurriculumUnit, ...]:
    units = []
    for idx, (number, name, surah, verse, start_page) in enumerate(_JUZ_TABLE):
        if idx + 1 < len(_JUZ_TABLE):
            end_page = _JUZ_TABLE[idx + 1][4] - 1
        else:
            end_page = TOTAL_PAGES
        units.append(CurriculumUnit(number, name, surah, verse, start_page, end_page))
    return tuple(units)


UNITS: tuple[CurriculumUnit, ...] = _build_units()
UNIT_NUMBERS: tuple[int, ...] = tuple(u.number for u in UNITS)


def all_units() -> tuple[CurriculumUnit, ...]:
    """Return all units in curriculum order."""
    return UNITS


def get_unit(number: int) -> CurriculumUnit:
    """Look up a unit by its 1-based number."""
    if not isinstance(number, int) or isinstance(number, bool) or not 1 <= number <= UNIT_COUNT:
        raise NotFound(f"Curriculum unit {number!r} not found")
    return UNITS[number - 1]


def validate_unit(number) -> int:
    """Return *number* as a unit number or raise InvalidInput."""
    if isinstance(number, bool) or not isinstance(number, int):
        raise InvalidInput(f"Unit must be an integer between 1 and {UNIT_COUNT}")
    if not 1 <= number <= UNIT_COUNT:
        raise InvalidInput(f"Unit {number} is outside 1..{UNIT_COUNT}")
    return number


def validate_review_units(primary: int, review_units) -> list[int]:
    """Validate review units: in range, unique, and distinct from the primary unit."""
    seen: list[int] = []
    for unit in review_units or []:
        validate_unit(unit)
        if unit == primary:
            raise InvalidInput(f"Unit {unit} cannot be both primary and review")
        if unit in seen:
            raise InvalidInput(f"Review unit {unit} listed more than once")
        seen.append(unit)
    return seen
