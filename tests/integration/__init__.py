"""
Integration tests package.

Tests de integración que verifican el funcionamiento correcto de:
- Flujos completos de reservación (pago, check-in, check-out)
- Holds vencidos y no-shows con reloj controlado
- Enmiendas de OTA con ajuste de inventario
- Repositorios SQL sobre SQLite in-memory
- API HTTP (FastAPI TestClient)

Para ejecutar solo tests de integración:
    pytest tests/integration/
"""
