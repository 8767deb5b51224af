import configparser
import datetime

from location_agent import LocationAgent
from location_agent.models import Fix, ListenerState, utc_timestamp
from location_agent.server import PORT


def make_config(**sections) -> configparser.ConfigParser:
    config = configparser.ConfigParser()
    config.read_dict(sections)
    return config


def test_defaults():
    agent = LocationAgent(make_config())

    assert agent.server.port == PORT == 8080
    assert agent.server.state is ListenerState.SETUP
    assert agent.status_interval == 60.0
    assert agent.supervisor.server is agent.server
    assert agent.server.handler.location is agent.location_service


def test_config_sections():
    agent = LocationAgent(
        make_config(
            gpsd={"host": "10.0.0.2", "port": "2948"},
            agent={"status_interval": "5"},
        )
    )

    assert agent.location_service._source.host == "10.0.0.2"
    assert agent.location_service._source.port == 2948
    assert agent.status_interval == 5.0


def test_status():
    agent = LocationAgent(make_config())

    assert agent.status() == "Waiting for location data..."

    agent.location_service.on_fix(
        Fix(
            latitude=50.45,
            longitude=30.52,
            altitude=100.0,
            horizontalAccuracy=10.0,
            timestamp="2024-01-01T00:00:00Z",
        )
    )
    assert agent.status() == "Location: 50.45, 30.52"


def test_agents_do_not_share_state():
    first = LocationAgent(make_config())
    second = LocationAgent(make_config())

    assert first.location_service is not second.location_service


def test_utc_timestamp():
    tz = datetime.timezone(datetime.timedelta(hours=2))
    moment = datetime.datetime(2024, 1, 1, 2, 0, tzinfo=tz)

    assert utc_timestamp(moment) == "2024-01-01T00:00:00Z"
    assert utc_timestamp(datetime.datetime(2024, 1, 1)) == "2024-01-01T00:00:00Z"
