from typing import Any, Dict, List, Optional


class AppError(Exception):
    status_code = 500
    message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationError(AppError):
    """Malformed input, rejected before any storage access."""

    status_code = 400
    message = "Validation error"

    def __init__(
        self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None
    ) -> None:
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(errors=[{"field": field, "message": message}])

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "errors": self.errors}


class AuthenticationError(AppError):
    status_code = 401
    message = "Authentication required"


class DomainNotAllowed(AuthenticationError):
    status_code = 403
    message = "Domain not allowed"


class NotFoundError(AppError):
    status_code = 404
    message = "Not found"


class InvalidTransition(AppError):
    status_code = 409

    def __init__(self, order_id: str, current: Optional[str], target: str) -> None:
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id} cannot move from {current} to {target}")


class StorageError(AppError):
    status_code = 500
    message = "Internal Server Error"


class OrderIdConflict(StorageError):
    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order id {order_id} already exists")


class TransactionExists(AppError):
    status_code = 409

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Payment already recorded for order {order_id}")
