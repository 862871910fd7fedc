import copy
from datetime import date

from pms.application.interfaces.inventory_repo import InventoryRepo
from pms.domain.entities.inventory import InventoryDay, InventoryKey
from pms.domain.errors import ConflictingVersionError


class InMemoryInventoryRepo(InventoryRepo):
    def __init__(self) -> None:
        self.days: dict[InventoryKey, InventoryDay] = {}

    async def get(self, key: InventoryKey) -> InventoryDay | None:
        day = self.days.get(key)
        return copy.deepcopy(day) if day else None

    async def save(self, day: InventoryDay, expected_version: int | None) -> InventoryDay:
        current = self.days.get(day.key)
        current_version = current.version if current else None
        if current_version != expected_version:
            raise ConflictingVersionError("inventory_day", str(day.key), expected_version)
        day.version = 0 if expected_version is None else expected_version + 1
        self.days[day.key] = copy.deepcopy(day)
        return copy.deepcopy(day)

    async def list_range(self, hotel_id: str, room_type_id: str, start: date, end: date) -> list[InventoryDay]:
        found = [
            d
            for key, d in self.days.items()
            if key.hotel_id == hotel_id and key.room_type_id == room_type_id and start <= key.day <= end
        ]
        found.sort(key=lambda d: d.day)
        return [copy.deepcopy(d) for d in found]
