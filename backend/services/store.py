"""Disaster, report and resource persistence.

``DatastoreStore`` talks to the hosted datastore; ``MemoryStore`` is the mock
mode used when no datastore is configured. Both expose the same coroutine
interface and raise ``NotFoundError`` / ``DatastoreError`` the same way, so
routes never branch on which one they got.
"""

import copy
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Protocol

from errors import DatastoreError, NotFoundError
from services.datastore import Datastore

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_METERS = 10_000
EARTH_RADIUS_KM = 6371.0088

UPDATABLE_DISASTER_FIELDS = ("title", "location_name", "description", "tags")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat()


def audit_entry(action: str, user_id: str | None, changes: dict | None = None) -> dict:
    entry = {"action": action, "user_id": user_id, "timestamp": _iso(_now())}
    if changes is not None:
        entry["changes"] = changes
    return entry


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle (haversine) distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


class Store(Protocol):
    name: str

    async def list_disasters(self, tag: str | None = None) -> list[dict]: ...

    async def get_disaster(self, disaster_id: str) -> dict: ...

    async def create_disaster(self, fields: dict, coordinates: dict | None) -> dict: ...

    async def update_disaster(self, disaster_id: str, fields: dict, user_id: str) -> dict: ...

    async def delete_disaster(self, disaster_id: str) -> None: ...

    async def list_reports(self, disaster_id: str | None = None) -> list[dict]: ...

    async def create_report(self, disaster_id: str, fields: dict) -> dict: ...

    async def set_report_verification(self, disaster_id: str, report_id: str, verdict: dict) -> dict: ...

    async def list_resources(
        self, disaster_id: str | None = None, near: tuple[float, float, float] | None = None
    ) -> list[dict]: ...

    async def create_resource(self, disaster_id: str, fields: dict, coordinates: dict | None) -> dict: ...


# ---------------------------------------------------------------------------
# Mock mode
# ---------------------------------------------------------------------------

def _seed(now: datetime) -> tuple[list[dict], list[dict], list[dict]]:
    hour = timedelta(hours=1)
    disasters = [
        {
            "id": "1",
            "title": "NYC Flood Emergency",
            "location_name": "Manhattan, NYC",
            "location": {"lat": 40.7831, "lng": -73.9712},
            "description": (
                "Heavy flooding in Manhattan due to storm surge. Multiple subway lines affected, "
                "residents in low-lying areas need evacuation assistance."
            ),
            "tags": ["flood", "urgent", "evacuation"],
            "owner_id": "netrunnerX",
            "created_at": _iso(now),
        },
        {
            "id": "2",
            "title": "Brooklyn Power Outage",
            "location_name": "Brooklyn, NYC",
            "location": {"lat": 40.6782, "lng": -73.9442},
            "description": (
                "Widespread power outage affecting 50,000+ residents in Brooklyn. "
                "Emergency shelters needed for vulnerable populations."
            ),
            "tags": ["power-outage", "shelter"],
            "owner_id": "reliefAdmin",
            "created_at": _iso(now - hour),
        },
        {
            "id": "3",
            "title": "Queens Building Collapse",
            "location_name": "Queens, NYC",
            "location": {"lat": 40.7282, "lng": -73.7949},
            "description": (
                "Partial building collapse in Queens following structural damage. "
                "Search and rescue operations in progress."
            ),
            "tags": ["building-collapse", "search-rescue", "urgent"],
            "owner_id": "netrunnerX",
            "created_at": _iso(now - 2 * hour),
        },
    ]
    for d in disasters:
        d["audit_trail"] = [{"action": "create", "user_id": d["owner_id"], "timestamp": d["created_at"]}]

    reports = [
        {
            "id": "1",
            "disaster_id": "1",
            "user_id": "citizen1",
            "content": "Water level rising rapidly on 14th Street. Need immediate evacuation assistance for elderly residents.",
            "image_url": "https://example.com/flood-image-1.jpg",
            "verification_status": "pending",
            "created_at": _iso(now),
        },
        {
            "id": "2",
            "disaster_id": "1",
            "user_id": "witness123",
            "content": "Subway entrance at Union Square completely flooded. People trapped on platform.",
            "image_url": "https://example.com/subway-flood.jpg",
            "verification_status": "verified",
            "created_at": _iso(now - hour / 2),
        },
        {
            "id": "3",
            "disaster_id": "2",
            "user_id": "brooklyn_resident",
            "content": "No power for 6 hours. Medical equipment failing. Need generator urgently.",
            "image_url": None,
            "verification_status": "verified",
            "created_at": _iso(now - hour),
        },
    ]

    resources = [
        {
            "id": "1",
            "disaster_id": "1",
            "name": "Red Cross Emergency Shelter",
            "location_name": "Washington Square Park, NYC",
            "location": {"lat": 40.7308, "lng": -73.9973},
            "type": "shelter",
            "created_at": _iso(now),
        },
        {
            "id": "2",
            "disaster_id": "1",
            "name": "FEMA Distribution Center",
            "location_name": "Madison Square Garden, NYC",
            "location": {"lat": 40.7505, "lng": -73.9934},
            "type": "supplies",
            "created_at": _iso(now),
        },
        {
            "id": "3",
            "disaster_id": "2",
            "name": "Brooklyn Community Center",
            "location_name": "Prospect Park, Brooklyn",
            "location": {"lat": 40.6602, "lng": -73.969},
            "type": "charging-station",
            "created_at": _iso(now),
        },
        {
            "id": "4",
            "disaster_id": "2",
            "name": "Emergency Medical Station",
            "location_name": "Brooklyn Bridge Park, Brooklyn",
            "location": {"lat": 40.7023, "lng": -73.9969},
            "type": "medical",
            "created_at": _iso(now),
        },
    ]
    return disasters, reports, resources


def _newest_first(rows: list[dict]) -> list[dict]:
    return sorted(rows, key=lambda r: r["created_at"], reverse=True)


class MemoryStore:
    """In-process store seeded with demo data. Lives as long as the app."""

    name = "memory"

    def __init__(self, seed: bool = True):
        if seed:
            self._disasters, self._reports, self._resources = _seed(_now())
        else:
            self._disasters, self._reports, self._resources = [], [], []

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex[:12]

    def _find_disaster(self, disaster_id: str) -> dict:
        for disaster in self._disasters:
            if disaster["id"] == disaster_id:
                return disaster
        raise NotFoundError("Disaster", disaster_id)

    async def list_disasters(self, tag: str | None = None) -> list[dict]:
        rows = [d for d in self._disasters if tag is None or tag in d["tags"]]
        return copy.deepcopy(_newest_first(rows))

    async def get_disaster(self, disaster_id: str) -> dict:
        return copy.deepcopy(self._find_disaster(disaster_id))

    async def create_disaster(self, fields: dict, coordinates: dict | None) -> dict:
        disaster = {
            "id": self._new_id(),
            "title": fields["title"],
            "location_name": fields.get("location_name"),
            "location": dict(coordinates) if coordinates else None,
            "description": fields.get("description"),
            "tags": list(fields.get("tags") or []),
            "owner_id": fields.get("owner_id"),
            "created_at": _iso(_now()),
            "audit_trail": [audit_entry("create", fields.get("owner_id"))],
        }
        self._disasters.append(disaster)
        logger.info("Mock disaster created: %s", disaster["title"])
        return copy.deepcopy(disaster)

    async def update_disaster(self, disaster_id: str, fields: dict, user_id: str) -> dict:
        disaster = self._find_disaster(disaster_id)
        changes = {k: fields[k] for k in UPDATABLE_DISASTER_FIELDS if k in fields}
        disaster.update(changes)
        disaster["updated_at"] = _iso(_now())
        disaster["audit_trail"].append(audit_entry("update", user_id, changes))
        return copy.deepcopy(disaster)

    async def delete_disaster(self, disaster_id: str) -> None:
        disaster = self._find_disaster(disaster_id)
        self._disasters.remove(disaster)
        self._reports = [r for r in self._reports if r["disaster_id"] != disaster_id]
        self._resources = [r for r in self._resources if r["disaster_id"] != disaster_id]

    async def list_reports(self, disaster_id: str | None = None) -> list[dict]:
        rows = [r for r in self._reports if disaster_id is None or r["disaster_id"] == disaster_id]
        return copy.deepcopy(_newest_first(rows))

    async def create_report(self, disaster_id: str, fields: dict) -> dict:
        self._find_disaster(disaster_id)
        report = {
            "id": self._new_id(),
            "disaster_id": disaster_id,
            "user_id": fields.get("user_id"),
            "content": fields.get("content"),
            "image_url": fields.get("image_url"),
            "verification_status": "pending",
            "created_at": _iso(_now()),
        }
        self._reports.append(report)
        return copy.deepcopy(report)

    async def set_report_verification(self, disaster_id: str, report_id: str, verdict: dict) -> dict:
        for report in self._reports:
            if report["id"] == report_id and report["disaster_id"] == disaster_id:
                report["verification_status"] = verdict["status"]
                report["verification_details"] = _verification_details(verdict)
                return copy.deepcopy(report)
        raise NotFoundError("Report", report_id)

    async def list_resources(
        self, disaster_id: str | None = None, near: tuple[float, float, float] | None = None
    ) -> list[dict]:
        rows = [r for r in self._resources if disaster_id is None or r["disaster_id"] == disaster_id]
        if near is not None:
            lat, lng, radius_m = near
            rows = [
                r for r in rows
                if r.get("location")
                and distance_km(lat, lng, r["location"]["lat"], r["location"]["lng"]) * 1000 <= radius_m
            ]
        return copy.deepcopy(rows)

    async def create_resource(self, disaster_id: str, fields: dict, coordinates: dict | None) -> dict:
        self._find_disaster(disaster_id)
        resource = {
            "id": self._new_id(),
            "disaster_id": disaster_id,
            "name": fields["name"],
            "location_name": fields.get("location_name"),
            "location": dict(coordinates) if coordinates else None,
            "type": fields["type"],
            "created_at": _iso(_now()),
        }
        self._resources.append(resource)
        return copy.deepcopy(resource)


# ---------------------------------------------------------------------------
# Hosted datastore
# ---------------------------------------------------------------------------

def _point(coordinates: dict | None) -> str | None:
    if not coordinates:
        return None
    return f"POINT({coordinates['lng']} {coordinates['lat']})"


def _verification_details(verdict: dict) -> dict:
    return {
        "confidence": verdict["confidence"],
        "reason": verdict["reason"],
        "verified_at": _iso(_now()),
    }


class DatastoreStore:
    name = "datastore"

    def __init__(self, datastore: Datastore):
        self._db = datastore

    async def list_disasters(self, tag: str | None = None) -> list[dict]:
        return await self._db.select(
            "disasters",
            contains={"tags": [tag]} if tag else None,
            order="created_at",
            descending=True,
        )

    async def get_disaster(self, disaster_id: str) -> dict:
        row = await self._db.select("disasters", eq={"id": disaster_id}, single=True)
        if not row:
            raise NotFoundError("Disaster", disaster_id)
        return row

    async def create_disaster(self, fields: dict, coordinates: dict | None) -> dict:
        row = await self._db.insert(
            "disasters",
            {
                "title": fields["title"],
                "location_name": fields.get("location_name"),
                "location": _point(coordinates),
                "description": fields.get("description"),
                "tags": list(fields.get("tags") or []),
                "owner_id": fields.get("owner_id"),
                "audit_trail": [audit_entry("create", fields.get("owner_id"))],
            },
        )
        logger.info("Disaster created: %s", row.get("title"))
        return row

    async def update_disaster(self, disaster_id: str, fields: dict, user_id: str) -> dict:
        current = await self.get_disaster(disaster_id)
        changes = {k: fields[k] for k in UPDATABLE_DISASTER_FIELDS if k in fields}
        audit_trail = list(current.get("audit_trail") or []) + [audit_entry("update", user_id, changes)]
        row = await self._db.update("disasters", {**changes, "audit_trail": audit_trail}, eq={"id": disaster_id})
        if row is None:
            raise NotFoundError("Disaster", disaster_id)
        logger.info("Disaster updated: %s", row.get("title"))
        return row

    async def delete_disaster(self, disaster_id: str) -> None:
        removed = await self._db.delete("disasters", eq={"id": disaster_id})
        if not removed:
            raise NotFoundError("Disaster", disaster_id)
        logger.info("Disaster deleted: %s", disaster_id)

    async def list_reports(self, disaster_id: str | None = None) -> list[dict]:
        return await self._db.select(
            "reports",
            eq={"disaster_id": disaster_id} if disaster_id else None,
            order="created_at",
            descending=True,
        )

    async def create_report(self, disaster_id: str, fields: dict) -> dict:
        await self.get_disaster(disaster_id)
        row = await self._db.insert(
            "reports",
            {
                "disaster_id": disaster_id,
                "user_id": fields.get("user_id"),
                "content": fields.get("content"),
                "image_url": fields.get("image_url"),
                "verification_status": "pending",
            },
        )
        logger.info("Report created for disaster %s", disaster_id)
        return row

    async def set_report_verification(self, disaster_id: str, report_id: str, verdict: dict) -> dict:
        row = await self._db.update(
            "reports",
            {
                "verification_status": verdict["status"],
                "verification_details": _verification_details(verdict),
            },
            eq={"id": report_id, "disaster_id": disaster_id},
        )
        if row is None:
            raise NotFoundError("Report", report_id)
        return row

    async def list_resources(
        self, disaster_id: str | None = None, near: tuple[float, float, float] | None = None
    ) -> list[dict]:
        if near is not None and disaster_id:
            lat, lng, radius_m = near
            try:
                return await self._db.rpc(
                    "get_nearby_resources",
                    {"disaster_id": disaster_id, "lat": lat, "lng": lng, "radius_meters": int(radius_m)},
                ) or []
            except DatastoreError as e:
                logger.warning("Geospatial query failed, falling back to plain query: %s", e.details)

        return await self._db.select("resources", eq={"disaster_id": disaster_id} if disaster_id else None)

    async def create_resource(self, disaster_id: str, fields: dict, coordinates: dict | None) -> dict:
        await self.get_disaster(disaster_id)
        return await self._db.insert(
            "resources",
            {
                "disaster_id": disaster_id,
                "name": fields["name"],
                "location_name": fields.get("location_name"),
                "location": _point(coordinates),
                "type": fields["type"],
            },
        )


def create_store(datastore: Datastore | None) -> Store:
    if datastore is None:
        return MemoryStore()
    return DatastoreStore(datastore)
