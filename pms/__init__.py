"""Núcleo de gestión hotelera: reservaciones, inventario por canal, enmiendas y sincronización con OTAs."""
