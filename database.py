"""
In-memory Mock Database
Operators, drone directory, pinned templates, recently used drones, and
flight history. Nothing is persisted across restarts.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from models import (
    Drone, FlightHistoryEntry, FlightStatus, PinConfig, PinnedDrone,
    RecentlyUsedDrone, SaveHistoryRequest, User
)
import config

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MockDatabase:
    """Process-local data store backing the API"""

    def __init__(self):
        self.users: List[User] = []
        self.drones: List[Drone] = []
        self.pinned: List[dict] = []
        self.recently_used: List[dict] = []
        self.flight_history: List[FlightHistoryEntry] = []
        self._next_id: Dict[str, int] = {
            'user': 1, 'drone': 1, 'pinned': 1, 'recent': 1, 'flight': 1
        }
        self._seed()

    def _new_id(self, kind: str) -> int:
        value = self._next_id[kind]
        self._next_id[kind] += 1
        return value

    def _seed(self):
        for user in config.MOCK_USERS:
            self.create_user(user['serial_number'], user['name'])

        for drone in config.MOCK_DRONES:
            self.drones.append(Drone(id=self._new_id('drone'), created_at=utc_now(), **drone))

        logger.info("Mock database initialized: %d operators, %d drones",
                    len(self.users), len(self.drones))

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def find_user_by_serial_number(self, serial_number: str) -> Optional[User]:
        return next((u for u in self.users if u.serial_number == serial_number), None)

    def find_user_by_id(self, user_id: int) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def create_user(self, serial_number: str, name: str) -> User:
        user = User(id=self._new_id('user'), serial_number=serial_number,
                    name=name, created_at=utc_now())
        self.users.append(user)
        return user

    # ------------------------------------------------------------------
    # Drone directory
    # ------------------------------------------------------------------

    def search_drones(self, query: str) -> List[Drone]:
        """Case-insensitive name match, excluding drones in maintenance"""
        needle = query.lower()
        matches = [d for d in self.drones
                   if needle in d.name.lower() and d.status != 'maintenance']
        return matches[:config.SEARCH_RESULT_LIMIT]

    def get_all_drones(self) -> List[Drone]:
        return list(self.drones)

    def get_drone_by_id(self, drone_id: int) -> Optional[Drone]:
        return next((d for d in self.drones if d.id == drone_id), None)

    def _join_drone(self, record: dict, default_status: str) -> dict:
        drone = self.get_drone_by_id(record['drone_id'])
        return {
            **record,
            'type': drone.type if drone else 'unknown',
            'status': drone.status.value if drone else default_status,
            'battery_level': drone.battery_level if drone else 0,
        }

    # ------------------------------------------------------------------
    # Pinned drones
    # ------------------------------------------------------------------

    def get_pinned_drones(self, user_id: str) -> List[PinnedDrone]:
        return [PinnedDrone(**self._join_drone(p, 'unknown'))
                for p in self.pinned if p['user_id'] == user_id]

    def pin_drone(self, drone_id: int, drone_name: str, user_id: str,
                  pin_config: Optional[PinConfig] = None) -> bool:
        """
        Pin a drone as a configuration template

        Returns:
            True if it was already pinned (its template is updated with every
            field present in pin_config)
        """
        values = pin_config.model_dump(exclude_none=True) if pin_config else {}

        for existing in self.pinned:
            if existing['drone_id'] == drone_id and existing['user_id'] == user_id:
                existing.update(values)
                return True

        record = {field: None for field in PinConfig.model_fields}
        record.update(values)
        record.update({
            'id': self._new_id('pinned'),
            'drone_id': drone_id,
            'drone_name': drone_name,
            'user_id': user_id,
            'created_at': utc_now(),
        })
        self.pinned.append(record)
        return False

    def unpin_drone(self, drone_id: int, user_id: str):
        self.pinned = [p for p in self.pinned
                       if not (p['drone_id'] == drone_id and p['user_id'] == user_id)]

    # ------------------------------------------------------------------
    # Recently used
    # ------------------------------------------------------------------

    def get_recently_used_drones(self, user_id: str) -> List[RecentlyUsedDrone]:
        records = [r for r in self.recently_used if r['user_id'] == user_id]
        records.sort(key=lambda r: (r['used_at'], r['id']), reverse=True)
        return [RecentlyUsedDrone(**self._join_drone(r, 'available'))
                for r in records[:config.RECENTLY_USED_LIMIT]]

    def add_to_recently_used(self, drone_id: int, drone_name: str, user_id: str):
        self.recently_used = [r for r in self.recently_used
                              if not (r['drone_id'] == drone_id and r['user_id'] == user_id)]
        self.recently_used.append({
            'id': self._new_id('recent'),
            'drone_id': drone_id,
            'drone_name': drone_name,
            'user_id': user_id,
            'used_at': utc_now(),
        })

    # ------------------------------------------------------------------
    # Flight history
    # ------------------------------------------------------------------

    def save_flight_history(self, record: SaveHistoryRequest, user_id: str) -> int:
        entry = FlightHistoryEntry(
            id=self._new_id('flight'),
            user_id=user_id,
            created_at=utc_now(),
            **record.model_dump()
        )
        self.flight_history.append(entry)
        return entry.id

    def get_flight_history(self, user_id: str) -> List[FlightHistoryEntry]:
        """Launched flights of one operator, newest first"""
        flights = [f for f in self.flight_history
                   if f.user_id == user_id and f.status == FlightStatus.LAUNCHED]
        flights.sort(key=lambda f: (f.created_at, f.id), reverse=True)
        return flights[:config.HISTORY_LIMIT]
