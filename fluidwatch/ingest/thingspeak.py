"""
ThingSpeak sensor feed ingestion.
field1 carries intake volume (mL), field2 output volume (mL). Each feed entry
is stored once per patient, keyed by its entry_id.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import httpx

from ..db.repository import BalanceRepository, DeviceInfo, PatientInfo
from ..errors import PatientNotFound, UpstreamUnavailable
from ..events.aggregator import Direction, Origin

logger = logging.getLogger("fluidwatch.ingest")

INTAKE_CATEGORY = "sensor_intake"
OUTPUT_CATEGORY = "urine"


@dataclass(frozen=True)
class FeedReading:
    entry_id: int
    timestamp: datetime
    intake_ml: Optional[float]
    output_ml: Optional[float]


def _parse_volume(raw) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _parse_timestamp(raw) -> datetime:
    if not raw:
        return datetime.now(timezone.utc)
    value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def parse_feed(feed: dict) -> Optional[FeedReading]:
    """None when the entry has no usable entry_id or timestamp."""
    try:
        entry_id = int(feed.get("entry_id"))
        timestamp = _parse_timestamp(feed.get("created_at"))
    except (TypeError, ValueError):
        return None
    return FeedReading(
        entry_id=entry_id,
        timestamp=timestamp,
        intake_ml=_parse_volume(feed.get("field1")),
        output_ml=_parse_volume(feed.get("field2")),
    )


class ThingSpeakClient:
    def __init__(
        self,
        base_url: str = "https://api.thingspeak.com",
        results: int = 100,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._results = results
        self._timeout = timeout
        self._transport = transport

    def fetch_feeds(self, channel_id: str, api_key: Optional[str] = None) -> List[dict]:
        params = {"results": self._results}
        if api_key:
            params["api_key"] = api_key
        url = f"{self._base_url}/channels/{channel_id}/feeds.json"
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.get(url, params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                logger.warning("ThingSpeak rate limit reached for channel %s", channel_id)
            raise UpstreamUnavailable(
                f"ThingSpeak error {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"ThingSpeak unreachable: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable(f"ThingSpeak returned invalid JSON: {e}") from e
        feeds = data.get("feeds") if isinstance(data, dict) else None
        return feeds or []


class SensorSync:
    """Pulls new feed entries for every active device into balance events."""

    def __init__(self, repository: BalanceRepository, client: ThingSpeakClient):
        self._repo = repository
        self._client = client

    def sync_devices(self) -> int:
        inserted = 0
        devices = self._repo.list_active_devices()
        if not devices:
            logger.info("no active devices configured")
            return 0
        for device in devices:
            try:
                patients = self._repo.patients_for_device(device.id)
            except UpstreamUnavailable as e:
                logger.error("could not load patients for device %s: %s", device.name, e)
                continue
            for patient in patients:
                try:
                    inserted += self.sync_patient(device, patient)
                except UpstreamUnavailable as e:
                    logger.error("sync skipped for patient %s: %s", patient.id, e)
        logger.info("sensor sync finished, %s events inserted", inserted)
        return inserted

    def sync_patient(self, device: DeviceInfo, patient: PatientInfo) -> int:
        last_entry = self._repo.last_sensor_entry_id(patient.id)
        feeds = self._client.fetch_feeds(device.channel_id, device.api_key)
        readings = [r for r in (parse_feed(f) for f in feeds) if r is not None]
        fresh = sorted((r for r in readings if r.entry_id > last_entry), key=lambda r: r.entry_id)
        logger.info(
            "device %s patient %s: %s feeds, %s new after entry %s",
            device.name, patient.id, len(feeds), len(fresh), last_entry,
        )

        inserted = 0
        for reading in fresh:
            if not self._repo.patient_exists(patient.id):
                logger.warning("patient %s no longer exists, stopping feed processing", patient.id)
                break
            try:
                inserted += self._store(patient.id, reading)
            except PatientNotFound:
                logger.warning("patient %s removed during sync, stopping feed processing", patient.id)
                break
        return inserted

    def _store(self, patient_id: int, reading: FeedReading) -> int:
        stored = 0
        for direction, volume, category in (
            (Direction.INTAKE, reading.intake_ml, INTAKE_CATEGORY),
            (Direction.OUTPUT, reading.output_ml, OUTPUT_CATEGORY),
        ):
            if volume is None:
                logger.debug("entry %s: no valid %s reading", reading.entry_id, direction.value)
                continue
            self._repo.add_event(
                patient_id,
                direction,
                volume,
                origin=Origin.SENSOR,
                timestamp=reading.timestamp,
                category=category,
                entry_id=reading.entry_id,
            )
            stored += 1
        return stored
