import pytest

from flightfeed.ingestion.reference_db import (
    AirlineLookup,
    extract_airline_code,
    load_airlines_csv,
    load_airports_csv,
    query_airports,
)


AIRLINES_CSV = """id,name,alias,iata,icao,callsign,country,active
1,United Airlines Holdings,\\N,UA,UAL,UNITED,United States,Y
2,Defunct Air,\\N,DF,DFA,DEFUNCT,Nowhere,N
3,No Designator,\\N,ND,\\N,\\N,Nowhere,Y
4,Example Cargo,\\N,-,EXC,EXCARGO,Elsewhere,Y
"""

AIRPORTS_CSV = """ident,type,name,latitude,longitude,elevation,country,region,municipality,iata,icao
KJFK,large_airport,John F Kennedy International Airport,40.6398,-73.7789,13,US,US-NY,New York,JFK,KJFK
KTEB,medium_airport,Teterboro Airport,40.8501,-74.0608,9,US,US-NJ,Teterboro,TEB,KTEB
egll,large,London Heathrow Airport,51.4706,-0.461941,83,GB,GB-ENG,London,LHR,EGLL
,small_airport,Missing Ident,0,0,0,US,US-XX,Nowhere,,
"""


@pytest.fixture
def airlines_csv(tmp_path):
    path = tmp_path / 'airlines.csv'
    path.write_text(AIRLINES_CSV, encoding='utf-8')
    return path


@pytest.fixture
def airports_csv(tmp_path):
    path = tmp_path / 'airports.csv'
    path.write_text(AIRPORTS_CSV, encoding='utf-8')
    return path


@pytest.mark.parametrize('callsign, code', [
    ('UAL839', 'UAL'),
    ('ual839 ', 'UAL'),
    ('DAL1234', 'DAL'),
    ('N12345', None),
    ('N/A', None),
    ('UAL', None),
    ('UALX12', None),
    ('', None),
    (None, None),
    (123, None),
    (['UAL839'], None),
])
def test_extract_airline_code(callsign, code):
    assert extract_airline_code(callsign) == code


def test_embedded_fallback(reference_db):
    info = AirlineLookup().get_by_callsign('BAW117')

    assert info.name == 'British Airways'
    assert info.iata == 'BA'
    assert info.to_dict() == {'airline': 'British Airways', 'airline_iata': 'BA', 'airline_icao': 'BAW'}


def test_unknown_prefix(reference_db):
    assert AirlineLookup().get_by_callsign('ZZZ999') is None


def test_loaded_airlines_take_precedence(reference_db, airlines_csv):
    assert load_airlines_csv(airlines_csv) == 3

    lookup = AirlineLookup()
    assert lookup.get('UAL').name == 'United Airlines Holdings'
    assert lookup.get('EXC').iata is None


def test_inactive_airlines_are_ignored(reference_db, airlines_csv):
    load_airlines_csv(airlines_csv)
    assert AirlineLookup().get('DFA') is None


def test_lookup_memoizes_results(reference_db, airlines_csv):
    lookup = AirlineLookup()
    assert lookup.get('EXC') is None

    load_airlines_csv(airlines_csv)
    assert lookup.get('EXC') is None

    lookup.clear_cache()
    assert lookup.get('EXC').name == 'Example Cargo'


def test_reload_upserts(reference_db, airlines_csv, tmp_path):
    load_airlines_csv(airlines_csv)

    updated = tmp_path / 'airlines_v2.csv'
    updated.write_text(
        'id,name,alias,iata,icao,callsign,country,active\n'
        '1,United Airlines,\\N,UA,UAL,UNITED,United States,Y\n',
        encoding='utf-8',
    )
    assert load_airlines_csv(updated) == 1

    assert AirlineLookup().get('UAL').name == 'United Airlines'


def test_missing_csv_loads_nothing(reference_db, tmp_path):
    assert load_airlines_csv(tmp_path / 'nope.csv') == 0
    assert load_airports_csv(tmp_path / 'nope.csv') == 0


def test_load_airports_maps_types(reference_db, airports_csv):
    assert load_airports_csv(airports_csv) == 3

    result = query_airports()

    assert result['total'] == 3
    assert result['hasMore'] is False
    by_id = {a['id']: a for a in result['airports']}
    assert by_id['KJFK']['type'] == 'large'
    assert by_id['KTEB']['type'] == 'medium'
    assert by_id['EGLL']['code'] == 'LHR'
    assert by_id['KJFK']['municipality'] == 'New York'
    assert by_id['KJFK']['elevation'] == 13


def test_query_airports_filters(reference_db, airports_csv):
    load_airports_csv(airports_csv)

    assert query_airports(country='GB')['total'] == 1
    assert query_airports(types=['large'])['total'] == 2
    assert query_airports(types=['large_airport', 'medium'])['total'] == 3
    assert query_airports(country='US', types=['large'])['total'] == 1


def test_query_airports_limit(reference_db, airports_csv):
    load_airports_csv(airports_csv)

    result = query_airports(limit=2)

    assert len(result['airports']) == 2
    assert result['total'] == 3
    assert result['hasMore'] is True
    assert [a['id'] for a in result['airports']] == ['EGLL', 'KJFK']
