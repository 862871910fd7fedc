"""
Capa de Infraestructura - Núcleo de gestión hotelera.

Implementaciones concretas de los puertos.

Estructura:
- db/: Tablas, engine y repositorios SQL (SQLAlchemy Core)
- gateways/: Adapters de canales (HTTP, logging) e implementaciones in-memory
- messaging/: Worker de sincronización con canales
- notifications/: Dispatcher de intents
- circuit_breaker.py: Breakers por canal (pybreaker)
- serialization.py: Documentos JSON de los agregados
"""
