"""
Error taxonomy shared by every core operation.

Core services raise these and never swallow them; the HTTP adapter maps each
class to a status code in ``main.create_app``.
"""
from typing import Optional


class BusOpsError(Exception):
    """Base class for errors raised by the core."""

    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(BusOpsError):
    """A caller-supplied value violates a numeric or ordering rule."""

    status_code = 400


class PreconditionError(BusOpsError):
    """The operation does not apply to the current state of the record."""

    status_code = 409

    def __init__(self, message: str, current: Optional[str] = None, requested: Optional[str] = None, **context):
        if current is not None or requested is not None:
            message = f"{message} (current: {current}, requested: {requested})"
        super().__init__(message, current=current, requested=requested, **context)
        self.current = current
        self.requested = requested


class NotFoundError(BusOpsError):
    """A referenced mission, vehicle, user, company or notification is gone."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[str]):
        super().__init__(f"{entity} not found: {entity_id}", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class StorageError(BusOpsError):
    """The persistence layer failed; raised after the transaction is rolled back."""

    status_code = 500


class AuthorizationError(BusOpsError):
    """The acting user may not perform the operation."""

    status_code = 403
