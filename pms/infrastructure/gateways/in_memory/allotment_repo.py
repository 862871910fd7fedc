import copy

from pms.application.interfaces.allotment_repo import AllotmentRepo
from pms.domain.entities.allotment import AllotmentConfig
from pms.domain.errors import ConflictingVersionError


class InMemoryAllotmentRepo(AllotmentRepo):
    def __init__(self) -> None:
        self.configs: dict[tuple[str, str], AllotmentConfig] = {}

    async def get(self, hotel_id: str, room_type_id: str) -> AllotmentConfig | None:
        config = self.configs.get((hotel_id, room_type_id))
        return copy.deepcopy(config) if config else None

    async def save(self, config: AllotmentConfig, expected_version: int | None) -> AllotmentConfig:
        key = (config.hotel_id, config.room_type_id)
        current = self.configs.get(key)
        current_version = current.version if current else None
        if current_version != expected_version:
            raise ConflictingVersionError("allotment", f"{key[0]}/{key[1]}", expected_version)
        config.version = 0 if expected_version is None else expected_version + 1
        self.configs[key] = copy.deepcopy(config)
        return copy.deepcopy(config)

    async def list_for_hotel(self, hotel_id: str) -> list[AllotmentConfig]:
        return [copy.deepcopy(c) for (hotel, _), c in sorted(self.configs.items()) if hotel == hotel_id]
