"""
Capa de Aplicación - Núcleo de gestión hotelera.

Orquesta la lógica de negocio y define los contratos con la infraestructura.

Estructura:
- interfaces/: Puertos (contratos para adaptadores)
- services/: Servicios (reservaciones, ledger, workflow, enmiendas, asignación)
- use_cases/: Casos de uso invocados por workers
- schemas.py: Schemas Pydantic para validación de entrada
"""
