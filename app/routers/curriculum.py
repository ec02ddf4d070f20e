"""Curriculum reference routes."""

from fastapi import APIRouter
from pydantic import BaseModel

from app.services import curriculum
from app.services.curriculum import CurriculumUnit

router = APIRouter(prefix="/api/curriculum", tags=["curriculum"])


class UnitItem(BaseModel):
    number: int
    name: str
    start_surah: int
    start_verse: int
    start_page: int
    end_page: int


def _unit_item(unit: CurriculumUnit) -> UnitItem:
    return UnitItem(
        number=unit.number,
        name=unit.name,
        start_surah=unit.start_surah,
        start_verse=unit.start_verse,
        start_page=unit.start_page,
        end_page=unit.end_page,
    )


@router.get("/units", response_model=list[UnitItem])
async def list_units():
    """All 30 Juz in curriculum order."""
    return [_unit_item(u) for u in curriculum.all_units()]


@router.get("/units/{number}", response_model=UnitItem)
async def get_unit(number: int):
    return _unit_item(curriculum.get_unit(number))
