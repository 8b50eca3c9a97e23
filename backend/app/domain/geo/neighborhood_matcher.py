"""
Nearest-neighborhood resolution.

An address is matched against the agglos served by an airport, ranked by
how well they fit both points:

    score = (d(address, agglo) / 1km)^2 + (d(airport, agglo) / 1km)^2

The first agglo (lowest score) holding a neighborhood of the address'
city wins. Within it, suburbs of the city take precedence over the city's
own neighborhoods ("sub hoods"); the nearest one to the address is
returned, ties broken by neighborhood id.
"""

import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.engine_config import AGGLO_DISTANCE_UNIT_M
from backend.app.core.exceptions import InvalidInputError, ResourceNotFoundError
from backend.app.models.address import Address
from backend.app.models.geo import Agglo, Airport, AirportAgglo, Neighborhood, NeighborhoodCity
from backend.app.services.geo_distance import DistanceFn, great_circle_distance

logger = logging.getLogger("companion")


class GeoMatcher:
    """Resolves the neighborhood of an address for a given airport."""

    def __init__(self, db: AsyncSession, distance: DistanceFn = great_circle_distance):
        self.db = db
        self.distance = distance

    def agglo_score(self, address, airport, agglo) -> float:
        to_address = self.distance(address, agglo) / AGGLO_DISTANCE_UNIT_M
        to_airport = self.distance(airport, agglo) / AGGLO_DISTANCE_UNIT_M
        return to_address ** 2 + to_airport ** 2

    def rank_agglos(self, address, airport, agglos: Iterable[Agglo]) -> list[Agglo]:
        return sorted(agglos, key=lambda agglo: (self.agglo_score(address, airport, agglo), agglo.id))

    async def _agglo_ids_by_airport(self, airports: Sequence[Airport]) -> dict[str, list[int]]:
        """Explicit agglo list of each airport, else its primary agglo."""
        airport_ids = [airport.id for airport in airports]
        result = await self.db.execute(
            select(AirportAgglo.airport_id, AirportAgglo.agglo_id)
            .where(AirportAgglo.airport_id.in_(airport_ids))
        )
        agglo_ids: dict[str, list[int]] = {airport_id: [] for airport_id in airport_ids}
        for airport_id, agglo_id in result.all():
            agglo_ids[airport_id].append(agglo_id)

        for airport in airports:
            if not agglo_ids[airport.id] and airport.primary_agglo_id is not None:
                agglo_ids[airport.id] = [airport.primary_agglo_id]
        return agglo_ids

    async def _agglos(self, agglo_ids: Iterable[int]) -> dict[int, Agglo]:
        agglo_ids = sorted(set(agglo_ids))
        if not agglo_ids:
            return {}
        result = await self.db.execute(select(Agglo).where(Agglo.id.in_(agglo_ids)))
        return {agglo.id: agglo for agglo in result.scalars().all()}

    async def _city_neighborhoods(
        self,
        city_id: int,
        agglo_ids: Iterable[int]
    ) -> tuple[list[Neighborhood], list[Neighborhood]]:
        """(sub hoods, suburbs) of a city, restricted to the given agglos."""
        agglo_ids = sorted(set(agglo_ids))
        if not agglo_ids:
            return [], []

        result = await self.db.execute(
            select(Neighborhood).where(
                Neighborhood.default_city_id == city_id,
                Neighborhood.agglo_id.in_(agglo_ids)
            )
        )
        sub_hoods = result.scalars().all()

        result = await self.db.execute(
            select(Neighborhood)
            .join(NeighborhoodCity, NeighborhoodCity.neighborhood_id == Neighborhood.id)
            .where(
                NeighborhoodCity.city_id == city_id,
                Neighborhood.agglo_id.in_(agglo_ids)
            )
        )
        suburbs = result.scalars().all()
        return sub_hoods, suburbs

    def nearest(self, address, hoods: Iterable[Neighborhood]) -> Optional[Neighborhood]:
        hoods = list(hoods)
        if not hoods:
            return None
        return min(hoods, key=lambda hood: (self.distance(address, hood), hood.id))

    def _pick(
        self,
        address,
        ranked_agglos: list[Agglo],
        sub_hoods: list[Neighborhood],
        suburbs: list[Neighborhood]
    ) -> Optional[Neighborhood]:
        for agglo in ranked_agglos:
            eligible = [hood for hood in suburbs if hood.agglo_id == agglo.id]
            if not eligible:
                eligible = [hood for hood in sub_hoods if hood.agglo_id == agglo.id]
            if eligible:
                return self.nearest(address, eligible)
        return None

    async def find_neighborhood(self, address: Address, airport: Optional[Airport]) -> Optional[Neighborhood]:
        """
        Neighborhood of `address` among the agglos served by `airport`.

        Returns None when the address is not mapped to a city or no agglo
        holds a neighborhood of that city.

        Raises:
            InvalidInputError: airport or address missing
        """
        if airport is None:
            raise InvalidInputError("An airport is required to find a neighborhood")
        if address is None:
            raise InvalidInputError("An address is required to find a neighborhood")

        agglo_ids = (await self._agglo_ids_by_airport([airport]))[airport.id]
        agglos = await self._agglos(agglo_ids)
        ranked = self.rank_agglos(address, airport, agglos.values())

        if address.city_id is None or not ranked:
            return None

        sub_hoods, suburbs = await self._city_neighborhoods(address.city_id, agglos.keys())
        hood = self._pick(address, ranked, sub_hoods, suburbs)

        logger.info(
            "Neighborhood resolved",
            extra={
                "address_id": address.id,
                "airport_id": airport.id,
                "neighborhood_id": hood.id if hood else None,
            }
        )
        return hood

    async def create_neighborhood_map(
        self,
        address: Address,
        airports: Sequence[Airport]
    ) -> dict[str, Optional[Neighborhood]]:
        """
        Neighborhood of `address` for each airport, with one city lookup.

        Raises:
            InvalidInputError: address without city, or no airport given
        """
        if address is None or address.city_id is None:
            raise InvalidInputError("The address must be mapped to a city")
        if not airports:
            raise InvalidInputError("At least one airport is required")

        agglo_ids_by_airport = await self._agglo_ids_by_airport(airports)
        agglos = await self._agglos(
            agglo_id for agglo_ids in agglo_ids_by_airport.values() for agglo_id in agglo_ids
        )
        sub_hoods, suburbs = await self._city_neighborhoods(address.city_id, agglos.keys())

        hood_map: dict[str, Optional[Neighborhood]] = {}
        for airport in airports:
            candidates = [agglos[agglo_id] for agglo_id in agglo_ids_by_airport[airport.id] if agglo_id in agglos]
            ranked = self.rank_agglos(address, airport, candidates)
            hood_map[airport.id] = self._pick(address, ranked, sub_hoods, suburbs)

        return hood_map

    async def find_neighborhood_within_agglo(self, address: Address, agglo_id: Optional[int]) -> Optional[Neighborhood]:
        """
        Nearest neighborhood of the address' city within one agglo.

        Suburbs and sub hoods compete on distance alone here.
        """
        if agglo_id is None or agglo_id < 0:
            raise InvalidInputError("An agglo is required to find a neighborhood", details={"agglo_id": agglo_id})
        if address.city_id is None:
            return None

        sub_hoods, suburbs = await self._city_neighborhoods(address.city_id, [agglo_id])
        unique = {hood.id: hood for hood in list(suburbs) + list(sub_hoods)}
        return self.nearest(address, unique.values())

    async def find_hood(self, address_id: int, airport_id: str) -> Optional[Neighborhood]:
        """
        Load an address and an airport, then find the neighborhood.

        Raises:
            ResourceNotFoundError: address or airport does not exist
        """
        address = await self.db.get(Address, address_id)
        if address is None:
            raise ResourceNotFoundError("Address", address_id)

        airport = await self.db.get(Airport, airport_id)
        if airport is None:
            raise ResourceNotFoundError("Airport", airport_id)

        return await self.find_neighborhood(address, airport)
