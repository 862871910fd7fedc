from pms.domain.entities.allotment import AllotmentConfig


class AllotmentRepo:
    async def get(self, hotel_id: str, room_type_id: str) -> AllotmentConfig | None:
        raise NotImplementedError

    async def save(self, config: AllotmentConfig, expected_version: int | None) -> AllotmentConfig:
        raise NotImplementedError

    async def list_for_hotel(self, hotel_id: str) -> list[AllotmentConfig]:
        raise NotImplementedError
