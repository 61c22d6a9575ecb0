"""
Airline/airport reference loader and lookup utilities.

Maps callsign prefixes to airline display data. Data can come from:
1. OpenFlights airlines.dat / airports CSV loaded into the reference DB
2. Embedded fallback data for common carriers

Usage:
    from flightfeed.ingestion.reference_db import AirlineLookup

    lookup = AirlineLookup()
    info = lookup.get_by_callsign('UAL839')
    print(info.name)  # 'United Airlines'
"""

import csv
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from flightfeed.models.base import SessionLocal, get_session
from flightfeed.models.reference import Airline, Airport, LEGACY_AIRPORT_TYPES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AirlineInfo:
    """Airline display data for a flight."""
    icao: str
    name: str
    iata: Optional[str] = None
    callsign: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'airline': self.name,
            'airline_iata': self.iata,
            'airline_icao': self.icao,
        }


# Common airline designators used when the reference DB has no match
# (ICAO code, IATA code, Callsign, Full name)
AIRLINE_INFO: Dict[str, tuple] = {
    'AAL': ('AAL', 'AA', 'AMERICAN', 'American Airlines'),
    'DAL': ('DAL', 'DL', 'DELTA', 'Delta Air Lines'),
    'UAL': ('UAL', 'UA', 'UNITED', 'United Airlines'),
    'SWA': ('SWA', 'WN', 'SOUTHWEST', 'Southwest Airlines'),
    'JBU': ('JBU', 'B6', 'JETBLUE', 'JetBlue Airways'),
    'ASA': ('ASA', 'AS', 'ALASKA', 'Alaska Airlines'),
    'FFT': ('FFT', 'F9', 'FRONTIER', 'Frontier Airlines'),
    'NKS': ('NKS', 'NK', 'SPIRIT WINGS', 'Spirit Airlines'),
    'ACA': ('ACA', 'AC', 'AIR CANADA', 'Air Canada'),
    'WJA': ('WJA', 'WS', 'WESTJET', 'WestJet'),
    'BAW': ('BAW', 'BA', 'SPEEDBIRD', 'British Airways'),
    'VIR': ('VIR', 'VS', 'VIRGIN', 'Virgin Atlantic'),
    'EZY': ('EZY', 'U2', 'EASY', 'easyJet'),
    'RYR': ('RYR', 'FR', 'RYANAIR', 'Ryanair'),
    'DLH': ('DLH', 'LH', 'LUFTHANSA', 'Lufthansa'),
    'AFR': ('AFR', 'AF', 'AIRFRANS', 'Air France'),
    'KLM': ('KLM', 'KL', 'KLM', 'KLM Royal Dutch'),
    'IBE': ('IBE', 'IB', 'IBERIA', 'Iberia'),
    'SWR': ('SWR', 'LX', 'SWISS', 'Swiss International Air Lines'),
    'THY': ('THY', 'TK', 'TURKISH', 'Turkish Airlines'),
    'UAE': ('UAE', 'EK', 'EMIRATES', 'Emirates'),
    'QTR': ('QTR', 'QR', 'QATARI', 'Qatar Airways'),
    'ETD': ('ETD', 'EY', 'ETIHAD', 'Etihad Airways'),
    'QFA': ('QFA', 'QF', 'QANTAS', 'Qantas'),
    'ANA': ('ANA', 'NH', 'ALL NIPPON', 'All Nippon Airways'),
    'JAL': ('JAL', 'JL', 'JAPAN AIR', 'Japan Airlines'),
    'CPA': ('CPA', 'CX', 'CATHAY', 'Cathay Pacific'),
    'SIA': ('SIA', 'SQ', 'SINGAPORE', 'Singapore Airlines'),
    'FDX': ('FDX', 'FX', 'FEDEX', 'FedEx Express'),
    'UPS': ('UPS', '5X', 'UPS', 'UPS Airlines'),
}


def extract_airline_code(callsign: Any) -> Optional[str]:
    """
    Extract the ICAO airline designator from a callsign.

    Callsigns typically start with 3-letter airline code followed by flight number.
    E.g., 'UAL839' -> 'UAL', 'DAL1234' -> 'DAL'. Registrations used as
    callsigns (e.g. 'N12345') have no designator.
    """
    if not isinstance(callsign, str):
        return None

    callsign = callsign.strip().upper()
    if len(callsign) < 4 or callsign == 'N/A':
        return None

    prefix = callsign[:3]
    if not prefix.isalpha() or not callsign[3].isdigit():
        return None

    return prefix


class AirlineLookup:
    """
    Airline lookup with database backing.

    Checks an in-memory memo first, then the reference DB, then the
    embedded table. Misses are memoized too so unknown prefixes cost one
    query at most.
    """

    def __init__(self, cache_size: int = 1000):
        self._cache: Dict[str, Optional[AirlineInfo]] = {}
        self._cache_size = cache_size
        self._lock = threading.Lock()

    def get_by_callsign(self, callsign: Optional[str]) -> Optional[AirlineInfo]:
        """Look up the operating airline of a flight by its callsign."""
        code = extract_airline_code(callsign)
        if code is None:
            return None
        return self.get(code)

    def get(self, icao: str) -> Optional[AirlineInfo]:
        """Look up an airline by ICAO designator."""
        icao = icao.upper()

        with self._lock:
            if icao in self._cache:
                return self._cache[icao]

        info = self._query_database(icao)

        if info is None and icao in AIRLINE_INFO:
            code, iata, radio, name = AIRLINE_INFO[icao]
            info = AirlineInfo(icao=code, iata=iata, callsign=radio, name=name)

        with self._lock:
            if len(self._cache) >= self._cache_size:
                # Simple cache eviction: clear oldest half
                keys = list(self._cache.keys())
                for key in keys[:len(keys) // 2]:
                    del self._cache[key]
            self._cache[icao] = info

        return info

    def _query_database(self, icao: str) -> Optional[AirlineInfo]:
        with SessionLocal() as session:
            airline = session.get(Airline, icao)
            if airline is None or not airline.active:
                return None
            return AirlineInfo(
                icao=airline.icao,
                iata=airline.iata,
                callsign=airline.callsign,
                name=airline.name,
            )

    def enrich(self, flight: dict) -> dict:
        """Return a copy of a serialized flight annotated with airline fields."""
        airline = self.get_by_callsign(flight.get('callsign'))
        if airline is None:
            return flight
        return {**flight, **airline.to_dict()}

    def clear_cache(self) -> None:
        """Clear the lookup cache."""
        with self._lock:
            self._cache.clear()


def query_airports(
    limit: int = 1000,
    country: Optional[str] = None,
    types: Optional[Iterable[str]] = None,
) -> dict:
    """
    List airports for the map layer.

    `types` accepts both current values ('large') and legacy ones
    ('large_airport'). Returns airports, the total match count, and
    whether more rows exist beyond `limit`.
    """
    stmt = select(Airport)
    if country:
        stmt = stmt.where(Airport.country == country)
    if types:
        mapped = [LEGACY_AIRPORT_TYPES.get(t.strip(), t.strip()) for t in types]
        stmt = stmt.where(Airport.type.in_(mapped))

    with SessionLocal() as session:
        total = session.scalar(select(func.count()).select_from(stmt.subquery()))
        airports = session.scalars(stmt.order_by(Airport.ident).limit(limit)).all()

    return {
        'airports': [airport.to_dict() for airport in airports],
        'total': total,
        'hasMore': total > len(airports),
    }


def _clean(value: Optional[str]) -> Optional[str]:
    """Strip a CSV cell; OpenFlights uses '\\N' and '-' for missing values."""
    if value is None:
        return None
    value = value.strip()
    if value in ('', '\\N', '-', 'N/A'):
        return None
    return value


def _parse_float(value: Optional[str]) -> Optional[float]:
    value = _clean(value)
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def load_airlines_csv(csv_path: Path, batch_size: int = 1000) -> int:
    """
    Load airline data from CSV into the reference database.

    Expected CSV header (OpenFlights airlines export):
    id,name,alias,iata,icao,callsign,country,active

    Rows without a 3-letter ICAO designator are skipped.
    Returns count of records loaded.
    """
    if not csv_path.exists():
        logger.error(f'Airline CSV not found: {csv_path}')
        return 0

    logger.info(f'Loading airline data from {csv_path}')
    loaded = 0
    batch: List[dict] = []

    with open(csv_path, 'r', encoding='utf-8', errors='ignore') as f:
        reader = csv.DictReader(f)

        for row in reader:
            icao = (_clean(row.get('icao')) or '').upper()
            name = _clean(row.get('name'))
            if len(icao) != 3 or not name:
                continue

            batch.append({
                'icao': icao,
                'iata': _clean(row.get('iata')),
                'name': name,
                'callsign': _clean(row.get('callsign')),
                'country': _clean(row.get('country')),
                'active': (row.get('active') or 'Y').strip().upper() in ('Y', 'TRUE', '1'),
            })

            if len(batch) >= batch_size:
                _upsert_batch(Airline, 'icao', batch)
                loaded += len(batch)
                batch = []

        if batch:
            _upsert_batch(Airline, 'icao', batch)
            loaded += len(batch)

    logger.info(f'Loaded {loaded} total airline records')
    return loaded


def load_airports_csv(csv_path: Path, batch_size: int = 5000) -> int:
    """
    Load airport data from CSV into the reference database.

    Expected CSV header (OurAirports-style export):
    ident,type,name,latitude,longitude,elevation,country,region,municipality,iata,icao

    Legacy type values ('large_airport') are mapped to AirportType values.
    Returns count of records loaded.
    """
    if not csv_path.exists():
        logger.error(f'Airport CSV not found: {csv_path}')
        return 0

    logger.info(f'Loading airport data from {csv_path}')
    loaded = 0
    batch: List[dict] = []

    with open(csv_path, 'r', encoding='utf-8', errors='ignore') as f:
        reader = csv.DictReader(f)

        for row in reader:
            ident = _clean(row.get('ident')) or _clean(row.get('icao'))
            name = _clean(row.get('name'))
            if not ident or not name:
                continue

            airport_type = _clean(row.get('type'))
            if airport_type:
                airport_type = LEGACY_AIRPORT_TYPES.get(airport_type, airport_type)

            elevation = _parse_float(row.get('elevation'))

            batch.append({
                'ident': ident.upper(),
                'iata': _clean(row.get('iata')),
                'icao': _clean(row.get('icao')),
                'name': name,
                'type': airport_type,
                'latitude': _parse_float(row.get('latitude')),
                'longitude': _parse_float(row.get('longitude')),
                'elevation': int(elevation) if elevation is not None else None,
                'country': _clean(row.get('country')),
                'region': _clean(row.get('region')),
                'city': _clean(row.get('municipality')) or _clean(row.get('city')),
            })

            if len(batch) >= batch_size:
                _upsert_batch(Airport, 'ident', batch)
                loaded += len(batch)
                logger.info(f'Loaded {loaded} airport records...')
                batch = []

        if batch:
            _upsert_batch(Airport, 'ident', batch)
            loaded += len(batch)

    logger.info(f'Loaded {loaded} total airport records')
    return loaded


def _upsert_batch(model, key: str, records: List[dict]) -> None:
    """Batch insert/upsert reference records."""
    with get_session() as session:
        for record in records:
            stmt = sqlite_insert(model).values(**record)
            stmt = stmt.on_conflict_do_update(
                index_elements=[key],
                set_={column: stmt.excluded[column] for column in record if column != key},
            )
            session.execute(stmt)
