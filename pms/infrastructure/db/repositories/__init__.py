from pms.infrastructure.db.repositories.allotment_repo_sql import AllotmentRepoSQL
from pms.infrastructure.db.repositories.inventory_repo_sql import InventoryRepoSQL
from pms.infrastructure.db.repositories.reservation_repo_sql import ReservationRepoSQL
from pms.infrastructure.db.repositories.sync_queue_sql import SyncQueueSQL

__all__ = [
    "ReservationRepoSQL",
    "InventoryRepoSQL",
    "AllotmentRepoSQL",
    "SyncQueueSQL",
]
