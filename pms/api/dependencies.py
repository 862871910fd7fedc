"""Composición de dependencias: repositorios, servicios y workers."""

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from pms.application.interfaces.allotment_repo import AllotmentRepo
from pms.application.interfaces.channel_adapter import ChannelAdapter
from pms.application.interfaces.clock import Clock, SystemClock
from pms.application.interfaces.inventory_repo import InventoryRepo
from pms.application.interfaces.notification_dispatcher import NotificationDispatcher
from pms.application.interfaces.reservation_repo import ReservationRepo
from pms.application.interfaces.sync_queue import SyncQueue
from pms.application.services.allocation_engine import AllocationRuleEngine
from pms.application.services.amendment_processor import AmendmentProcessor
from pms.application.services.intent_dispatcher import IntentDispatcher
from pms.application.services.inventory_ledger import InventoryLedger
from pms.application.services.reservation_service import ReservationService
from pms.application.services.workflow_engine import WorkflowEngine, WorkflowSchedule
from pms.application.use_cases.process_sync_item import ProcessSyncItemUseCase
from pms.config import Settings
from pms.domain.policy import ReservationPolicy
from pms.domain.state_machine import ReservationStateMachine
from pms.infrastructure.circuit_breaker import ChannelBreakers
from pms.infrastructure.db.engine import build_engine, build_sessionmaker
from pms.infrastructure.db.repositories import AllotmentRepoSQL, InventoryRepoSQL, ReservationRepoSQL, SyncQueueSQL
from pms.infrastructure.gateways.channel_adapter_http import ChannelAdapterHTTP
from pms.infrastructure.gateways.channel_adapter_logging import LoggingChannelAdapter
from pms.infrastructure.gateways.channel_adapter_selector import ChannelAdapterSelector
from pms.infrastructure.gateways.in_memory import (
    InMemoryAllotmentRepo,
    InMemoryInventoryRepo,
    InMemoryReservationRepo,
    InMemorySyncQueue,
)
from pms.infrastructure.messaging.sync_worker import SyncWorker
from pms.infrastructure.notifications.logging_dispatcher import LoggingNotificationDispatcher


@dataclass
class Container:
    settings: Settings
    clock: Clock
    policy: ReservationPolicy
    reservation_repo: ReservationRepo
    inventory_repo: InventoryRepo
    allotment_repo: AllotmentRepo
    sync_queue: SyncQueue
    notifications: NotificationDispatcher
    dispatcher: IntentDispatcher
    ledger: InventoryLedger
    allocation: AllocationRuleEngine
    reservations: ReservationService
    workflow: WorkflowEngine
    amendments: AmendmentProcessor
    adapter_selector: ChannelAdapterSelector
    process_sync_item: ProcessSyncItemUseCase
    sync_worker: SyncWorker
    breakers: ChannelBreakers | None = None
    engine: AsyncEngine | None = None


def _repositories(settings: Settings):
    if settings.use_in_memory:
        return None, InMemoryReservationRepo(), InMemoryInventoryRepo(), InMemoryAllotmentRepo(), InMemorySyncQueue()
    engine = build_engine(settings)
    session_maker = build_sessionmaker(engine)
    return (
        engine,
        ReservationRepoSQL(session_maker),
        InventoryRepoSQL(session_maker),
        AllotmentRepoSQL(session_maker),
        SyncQueueSQL(session_maker),
    )


def _adapter_selector(
    settings: Settings, breakers: ChannelBreakers, channel_adapters: dict[str, ChannelAdapter] | None
) -> ChannelAdapterSelector:
    selector = ChannelAdapterSelector(default_adapter=LoggingChannelAdapter())
    for channel, base_url in settings.channel_endpoints.items():
        selector.register(
            channel,
            ChannelAdapterHTTP(
                channel=channel,
                base_url=base_url,
                breaker=breakers.for_channel(channel),
                timeout_seconds=settings.channel_timeout_seconds,
                api_key=settings.channel_api_keys.get(channel),
            ),
        )
    for channel, adapter in (channel_adapters or {}).items():
        selector.register(channel, adapter)
    return selector


def build_container(
    settings: Settings,
    clock: Clock | None = None,
    notifications: NotificationDispatcher | None = None,
    channel_adapters: dict[str, ChannelAdapter] | None = None,
) -> Container:
    clock = clock or SystemClock()
    policy = ReservationPolicy.from_settings(settings)
    engine, reservation_repo, inventory_repo, allotment_repo, sync_queue = _repositories(settings)

    notifications = notifications or LoggingNotificationDispatcher()
    dispatcher = IntentDispatcher(notifications)
    ledger = InventoryLedger(
        inventory_repo, allotment_repo, clock, conflict_attempts=settings.conflict_retry_attempts
    )
    allocation = AllocationRuleEngine(
        allotment_repo, ledger, clock, conflict_attempts=settings.conflict_retry_attempts
    )
    reservations = ReservationService(
        reservation_repo=reservation_repo,
        ledger=ledger,
        state_machine=ReservationStateMachine(policy),
        dispatcher=dispatcher,
        clock=clock,
        policy=policy,
        conflict_attempts=settings.conflict_retry_attempts,
    )
    workflow = WorkflowEngine(
        reservations=reservations,
        reservation_repo=reservation_repo,
        sync_queue=sync_queue,
        dispatcher=dispatcher,
        clock=clock,
        policy=policy,
        schedule=WorkflowSchedule.from_settings(settings),
    )
    reservations.bind_workflow(workflow)
    amendments = AmendmentProcessor(reservations, ledger, clock, policy)

    breakers = ChannelBreakers(
        fail_max=settings.circuit_breaker_fail_max,
        reset_timeout=settings.circuit_breaker_reset_timeout,
    )
    selector = _adapter_selector(settings, breakers, channel_adapters)
    process_sync_item = ProcessSyncItemUseCase(
        sync_queue=sync_queue,
        reservations=reservations,
        adapter_selector=selector,
        dispatcher=dispatcher,
        clock=clock,
        timeout_seconds=settings.channel_timeout_seconds,
        base_backoff_seconds=settings.sync_base_backoff_seconds,
    )
    sync_worker = SyncWorker(
        sync_queue=sync_queue,
        process_item=process_sync_item,
        clock=clock,
        poll_interval_seconds=settings.sync_poll_interval_seconds,
        batch_size=settings.sync_batch_size,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )
    return Container(
        settings=settings,
        clock=clock,
        policy=policy,
        reservation_repo=reservation_repo,
        inventory_repo=inventory_repo,
        allotment_repo=allotment_repo,
        sync_queue=sync_queue,
        notifications=notifications,
        dispatcher=dispatcher,
        ledger=ledger,
        allocation=allocation,
        reservations=reservations,
        workflow=workflow,
        amendments=amendments,
        adapter_selector=selector,
        process_sync_item=process_sync_item,
        sync_worker=sync_worker,
        breakers=breakers,
        engine=engine,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container
