"""Pruebas unitarias de dominio, servicios y adapters."""
