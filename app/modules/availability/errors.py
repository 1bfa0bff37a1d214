import uuid


class AvailabilityError(Exception):
    """Base class for failures the availability routes translate to HTTP errors."""


class PayerNotFound(AvailabilityError):
    def __init__(self, payer_id: uuid.UUID):
        super().__init__(f"Payer {payer_id} not found")
        self.payer_id = payer_id


class ProviderNotFound(AvailabilityError):
    def __init__(self, provider_id: uuid.UUID):
        super().__init__(f"Provider {provider_id} not found")
        self.provider_id = provider_id


class NetworkLookupFailed(AvailabilityError):
    """The provider/payer network could not be queried; nothing can be booked."""
