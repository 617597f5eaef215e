from orders_service.clients.devices import DevicesClient
from orders_service.clients.identity import IdentityClient

__all__ = ["DevicesClient", "IdentityClient"]
