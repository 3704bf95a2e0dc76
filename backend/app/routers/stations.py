"""Station catalogue router (static reference data, cached in Redis).

Endpoints:
    GET /api/stations/{line}            All four stations for line A or B
    GET /api/stations/{line}/{number}   One station
"""

from fastapi import APIRouter

from app.config import settings
from app.schemas.station import StationOut
from app.services.stations import get_station, station_catalogue
from app.utils.cache import cached

router = APIRouter()


@cached(ttl=settings.station_cache_ttl_seconds, prefix="stations")
async def station_catalogue_for(line: str) -> list[dict]:
    return station_catalogue(line)


@router.get("/{line}", response_model=list[StationOut])
async def list_stations(line: str):
    return await station_catalogue_for(line=line.upper())


@router.get("/{line}/{number}", response_model=StationOut)
async def station_detail(line: str, number: int):
    station = get_station(number)
    catalogue = await station_catalogue_for(line=line.upper())
    return catalogue[station.number - 1]
