from datetime import date

from pms.domain.entities.inventory import InventoryDay, InventoryKey


class InventoryRepo:
    async def get(self, key: InventoryKey) -> InventoryDay | None:
        raise NotImplementedError

    async def save(self, day: InventoryDay, expected_version: int | None) -> InventoryDay:
        """expected_version None inserta; en otro caso actualiza con CAS."""
        raise NotImplementedError

    async def list_range(self, hotel_id: str, room_type_id: str, start: date, end: date) -> list[InventoryDay]:
        """Días existentes en [start, end], ordenados por fecha."""
        raise NotImplementedError
