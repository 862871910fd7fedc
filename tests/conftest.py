"""
Pytest configuration and shared fixtures.

Este módulo provee fixtures reutilizables para:
- Reloj fake (FakeClock) con tiempo fijo y controlable
- Contenedor completo in-memory (servicios, workflow, worker)
- Adapters de canal programables y dispatcher que registra intents
- Base de datos SQLite in-memory para los repositorios SQL
"""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from pms.api.dependencies import Container, build_container
from pms.application.interfaces.clock import FakeClock
from pms.config import Settings
from pms.infrastructure.db.engine import build_sessionmaker, create_all, create_engine_for_url
from pms.infrastructure.gateways.in_memory import RecordingNotificationDispatcher, StubChannelAdapter
from pms.main import create_app
from tests.helpers import NOW

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============================================================================
# FIXTURES DE TIEMPO Y CONFIGURACIÓN
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Reloj fijo en 2025-01-01 10:00 UTC; las pruebas lo avanzan a mano."""
    return FakeClock(NOW)


@pytest.fixture
def settings() -> Settings:
    return Settings(use_in_memory=True, _env_file=None)


# ============================================================================
# FIXTURES DE COLABORADORES
# ============================================================================


@pytest.fixture
def notifications() -> RecordingNotificationDispatcher:
    return RecordingNotificationDispatcher()


@pytest.fixture
def booking_adapter() -> StubChannelAdapter:
    """Adapter de Booking.com; responde OK salvo que se programen fallos."""
    return StubChannelAdapter()


@pytest.fixture
def container(settings, clock, notifications, booking_adapter) -> Container:
    """Contenedor completo in-memory, sin workers corriendo."""
    return build_container(
        settings,
        clock=clock,
        notifications=notifications,
        channel_adapters={"booking_com": booking_adapter, "expedia": StubChannelAdapter()},
    )


# ============================================================================
# FIXTURES DE API
# ============================================================================


@pytest.fixture
def client(settings, container) -> TestClient:
    """
    TestClient sobre el contenedor de pruebas.

    Sin context manager no corre el lifespan: el workflow y el worker quedan
    detenidos y las revisiones se disparan a mano.
    """
    return TestClient(create_app(settings, container))


# ============================================================================
# FIXTURES DE BASE DE DATOS
# ============================================================================


@pytest_asyncio.fixture
async def test_engine():
    """
    Engine SQLite in-memory con todas las tablas creadas.
    Se crea uno nuevo por test para aislamiento.
    """
    engine = create_engine_for_url(TEST_DATABASE_URL)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return build_sessionmaker(test_engine)
