"""Shared fixtures: a throwaway SQLite database and dump file helpers.

Hey future me - every database test gets its OWN SQLite file under tmp_path. In-memory SQLite
would hand each pooled connection a different empty database, and the import job opens many
sessions.
"""

import gzip
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest
import pytest_asyncio

from waxsync.config import CatalogImportSettings, DatabaseSettings, Settings
from waxsync.domain.entities import EntityType
from waxsync.infrastructure.persistence.database import Database
from waxsync.infrastructure.persistence.retry import DatabaseLockMetrics

PERIOD = "2026-10"

LABELS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<labels>
  <label>
    <id>1</id>
    <name>Warp Records</name>
    <profile>Sheffield label</profile>
    <urls><url>https://warp.net</url></urls>
    <sublabels><label id="2">Arcola</label></sublabels>
    <data_quality>Correct</data_quality>
  </label>
  <label>
    <id>2</id>
    <name>Arcola</name>
    <parentLabel id="1">Warp Records</parentLabel>
  </label>
</labels>
"""

ARTISTS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<artists>
  <artist>
    <id>1</id>
    <name>Aphex Twin</name>
    <realname>Richard D. James</realname>
    <namevariations><name>AFX</name><name>Aphex</name></namevariations>
  </artist>
  <artist>
    <id>2</id>
    <name>Boards Of Canada</name>
  </artist>
  <artist>
    <id>3</id>
    <name>Autechre</name>
  </artist>
</artists>
"""

MASTERS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<masters>
  <master id="10">
    <main_release>100</main_release>
    <artists>
      <artist><id>1</id><name>Aphex Twin</name></artist>
      <artist><id>2</id><name>Boards Of Canada</name></artist>
    </artists>
    <genres><genre>Electronic</genre></genres>
    <styles><style>IDM</style></styles>
    <year>1992</year>
    <title>Selected Ambient Works</title>
  </master>
  <master id="11">
    <main_release>101</main_release>
    <artists>
      <artist><id>3</id><name>Autechre</name></artist>
    </artists>
    <genres><genre>Electronic</genre></genres>
    <year>1994</year>
    <title>Amber</title>
  </master>
</masters>
"""

RELEASES_XML = """<?xml version="1.0" encoding="UTF-8"?>
<releases>
  <release id="100" status="Accepted">
    <artists><artist><id>1</id><name>Aphex Twin</name></artist></artists>
    <title>Selected Ambient Works 85-92</title>
    <labels><label name="Apollo" catno="AMB 3922" id="1"/></labels>
    <formats>
      <format name="Vinyl" qty="2">
        <descriptions><description>LP</description><description>Album</description></descriptions>
      </format>
    </formats>
    <genres><genre>Electronic</genre></genres>
    <styles><style>Ambient</style></styles>
    <country>Belgium</country>
    <released>1992-11-09</released>
    <master_id is_main_release="true">10</master_id>
    <tracklist>
      <track><position>A1</position><title>Xtal</title><duration>4:51</duration></track>
      <track><position>A2</position><title>Tha</title><duration>9:01</duration></track>
    </tracklist>
  </release>
  <release id="101" status="Accepted">
    <artists><artist><id>3</id><name>Autechre</name></artist></artists>
    <title>Amber</title>
    <labels><label name="Warp Records" catno="WARPCD25" id="1"/></labels>
    <formats><format name="CD" qty="1"/></formats>
    <genres><genre>Electronic</genre></genres>
    <released>1994</released>
    <master_id is_main_release="true">11</master_id>
  </release>
  <release id="102" status="Accepted">
    <artists><artist><id>3</id><name>Autechre</name></artist></artists>
    <title>Amber</title>
    <labels><label name="Warp Records" catno="WARPLP25" id="1"/></labels>
    <formats><format name="Vinyl" qty="2"/></formats>
    <genres><genre>Electronic</genre><genre>Ambient</genre></genres>
    <released>1994-11-07</released>
    <master_id is_main_release="false">11</master_id>
  </release>
</releases>
"""

DEFAULT_DUMPS: dict[EntityType, str] = {
    EntityType.LABEL: LABELS_XML,
    EntityType.ARTIST: ARTISTS_XML,
    EntityType.MASTER: MASTERS_XML,
    EntityType.RELEASE: RELEASES_XML,
}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temp database and dump directory."""
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'waxsync.db'}"),
        catalog_import=CatalogImportSettings(
            dump_dir=tmp_path / "dumps",
            batch_size=2,
            association_batch_size=3,
            stale_run_timeout_minutes=60,
        ),
    )


@pytest_asyncio.fixture
async def db(settings: Settings) -> AsyncIterator[Database]:
    """Database with all tables created."""
    DatabaseLockMetrics.get_instance().reset()
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.drop_tables()
    await database.close()


@pytest.fixture
def write_dump(settings: Settings) -> Callable[..., Path]:
    """Write a dump file into ``<dump_dir>/<period>/`` and return its path."""

    def _write(
        entity_type: EntityType,
        xml: str,
        period: str = PERIOD,
        gz: bool = True,
    ) -> Path:
        directory = settings.catalog_import.dump_dir / period
        directory.mkdir(parents=True, exist_ok=True)
        name = f"discogs_{period.replace('-', '')}01_{entity_type.value}.xml"
        data = xml.encode("utf-8")
        if gz:
            path = directory / f"{name}.gz"
            path.write_bytes(gzip.compress(data))
        else:
            path = directory / name
            path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def write_all_dumps(write_dump: Callable[..., Path]) -> Callable[..., dict[EntityType, Path]]:
    """Write the four sample dumps for a period."""

    def _write_all(period: str = PERIOD) -> dict[EntityType, Path]:
        return {
            entity_type: write_dump(entity_type, xml, period=period)
            for entity_type, xml in DEFAULT_DUMPS.items()
        }

    return _write_all
