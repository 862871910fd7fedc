"""
Smoke tests de importación.

Cada punto de entrada debe cargar en un intérprete limpio, sin depender del
orden en que otros tests importaron módulos antes.
"""

import importlib
import pkgutil
import subprocess
import sys

import pytest

import pms

ENTRY_POINTS = [
    "pms.domain.entities.reservation",
    "pms.domain.value_objects",
    "pms.domain",
    "pms.main",
]


@pytest.mark.parametrize("module", ENTRY_POINTS)
def test_entry_point_imports_in_fresh_interpreter(module):
    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert result.returncode == 0, result.stderr


def test_every_module_imports():
    for info in pkgutil.walk_packages(pms.__path__, prefix="pms."):
        importlib.import_module(info.name)


def test_main_exposes_app():
    from pms.main import app

    paths = {route.path for route in app.routes}
    assert {"/health", "/health/ready"} <= paths


def test_actor_shared_by_entities_and_context():
    from pms.domain.entities.reservation import Actor as ReservationActor
    from pms.domain.value_objects import Actor, StatusChangeContext

    assert ReservationActor is Actor
    assert isinstance(StatusChangeContext().actor, Actor)
