"""
Airline and Airport models - static reference data for display enrichment.

Loaded from OpenFlights-style CSV exports and queried by code. Neither
table is written during request handling.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Float, Integer, Boolean, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from flightfeed.models.base import Base


class AirportType(str, Enum):
    """Airport classification used by the map layer filters."""
    LARGE = 'large'
    MEDIUM = 'medium'
    SMALL = 'small'
    HELIPORT = 'heliport'
    SEAPLANE = 'seaplane'
    CLOSED = 'closed'


# Legacy OurAirports type names still sent by older clients
LEGACY_AIRPORT_TYPES = {
    'large_airport': AirportType.LARGE.value,
    'medium_airport': AirportType.MEDIUM.value,
    'small_airport': AirportType.SMALL.value,
    'heliport': AirportType.HELIPORT.value,
    'seaplane_base': AirportType.SEAPLANE.value,
    'closed': AirportType.CLOSED.value,
}


class Airline(Base):
    """
    Airline keyed by its 3-letter ICAO designator.

    The ICAO designator is the prefix of most commercial callsigns
    (e.g. 'UAL' in 'UAL839'), which is how live flights are matched.
    """

    __tablename__ = 'airlines'

    icao: Mapped[str] = mapped_column(
        String(3),
        primary_key=True,
        comment='ICAO airline designator (e.g., UAL)'
    )

    iata: Mapped[Optional[str]] = mapped_column(
        String(2),
        nullable=True,
        index=True,
        comment='IATA airline code (e.g., UA)'
    )

    name: Mapped[str] = mapped_column(
        String(100),
        comment='Airline name'
    )

    callsign: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment='Radio callsign (e.g., UNITED)'
    )

    country: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f'<Airline {self.icao} {self.name}>'


class Airport(Base):
    """Airport keyed by its ident (ICAO code where one exists)."""

    __tablename__ = 'airports'

    ident: Mapped[str] = mapped_column(
        String(10),
        primary_key=True,
        comment='Airport identifier (usually ICAO)'
    )

    iata: Mapped[Optional[str]] = mapped_column(String(3), nullable=True, index=True)
    icao: Mapped[Optional[str]] = mapped_column(String(4), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(150))

    type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment='AirportType value'
    )

    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    elevation: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment='Elevation in feet'
    )

    country: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        Index('ix_airports_country_type', 'country', 'type'),
    )

    def __repr__(self) -> str:
        return f'<Airport {self.ident} {self.name}>'

    @property
    def code(self) -> str:
        """Best available short code for map labels."""
        return self.iata or self.icao or self.ident

    def to_dict(self) -> dict:
        return {
            'id': self.ident,
            'code': self.code,
            'iata': self.iata,
            'icao': self.icao,
            'ident': self.icao,
            'name': self.name,
            'type': self.type,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'elevation': self.elevation,
            'country': self.country,
            'region': self.region,
            'municipality': self.city,
        }
