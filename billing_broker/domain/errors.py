"""Error taxonomy shared by the billing services and API routers."""


class BillingError(Exception):
    """Base class for every billing failure surfaced to request handlers."""


class InvalidArgument(BillingError, ValueError):
    """Malformed input, detected before any state is touched."""


class NotFound(BillingError, LookupError):
    """The operation needs an existing subscription and there is none."""


class InvalidState(BillingError):
    """The operation does not apply to the subscription's current state."""


class GatewayError(BillingError):
    """The payments provider rejected or failed a request."""
