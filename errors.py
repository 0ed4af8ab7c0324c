"""
Error taxonomy shared by the cart, wishlist and checkout services.

Business errors carry a 4xx status and a message that names the offending
product/variant/item. Infrastructure errors carry a 5xx status; their message
is logged but never sent to the client.
"""


class ShopError(Exception):
    status_code = 400
    public = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ShopError):
    status_code = 404


class InsufficientStockError(ShopError):
    status_code = 409


class EmptyCartError(ShopError):
    status_code = 400

    def __init__(self, message: str = "Cart is empty") -> None:
        super().__init__(message)


class PriceResolutionError(ShopError):
    status_code = 409


class UnsupportedPaymentMethodError(ShopError):
    status_code = 400


class InfrastructureError(ShopError):
    status_code = 503
    public = False
    detail = "Service temporarily unavailable"


class GatewayFailure(InfrastructureError):
    status_code = 502
    detail = "Payment provider error"


class CacheUnavailable(InfrastructureError):
    pass


class StoreUnavailable(InfrastructureError):
    pass
