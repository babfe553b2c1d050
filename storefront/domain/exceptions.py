class DomainException(Exception):
    pass


class InvalidInputError(DomainException):
    pass


class LimitExceededError(DomainException):
    pass


class NotFoundError(DomainException):
    pass


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(NotFoundError):
    pass


class PaymentMethodNotFoundError(NotFoundError):
    pass


class AddressNotFoundError(NotFoundError):
    pass


class ForbiddenError(DomainException):
    pass


class ConflictError(DomainException):
    pass


class InsufficientStockError(ConflictError):
    def __init__(self, product_name: str, available: int, requested: int):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f'Insufficient stock for "{product_name}". Available: {available}, Requested: {requested}'
        )


class OrderNumberCollisionError(ConflictError):
    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__("Order number conflict. Please try again.")


class ConcurrencyConflictError(ConflictError):
    pass


class InvalidStateError(DomainException):
    pass
