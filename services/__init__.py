"""
Servicios de negocio del núcleo operativo: estado de habitaciones, reservas,
folios, housekeeping, auditoría nocturna e historial.

Los módulos se importan directamente (services.night_audit, services.folio_ledger, ...).
"""
