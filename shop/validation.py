"""
Runtime validation utilities for ensuring architectural contracts and data
integrity.

This module provides functions to validate:

- Repository implementations against their defined Protocols using
  @runtime_checkable.
- Untrusted dictionary payloads against Pydantic domain models, reporting
  field-level violations in the shape the API returns to callers.

The goal is to catch configuration and data errors early at critical
application boundaries.
"""

import logging
from typing import Any, Dict, List, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from shop.exceptions import RequestValidationFailed

logger = logging.getLogger(__name__)

P = TypeVar("P")
M = TypeVar("M", bound=BaseModel)


class RepositoryValidationError(Exception):
    """Raised when repository contract validation fails"""

    pass


def validate_repository_protocol(
    repository: object, protocol: Type[P]
) -> None:
    """
    Validate that a repository implementation satisfies a protocol contract.

    Args:
        repository: The repository implementation to validate
        protocol: The protocol class to validate against

    Raises:
        RepositoryValidationError: If validation fails

    Example:
        >>> from shop.repos.memory import MemoryStore, MemoryOrderRepository
        >>> from shop.repositories import OrderRepository
        >>> repo = MemoryOrderRepository(MemoryStore())
        >>> validate_repository_protocol(repo, OrderRepository)
    """
    if not isinstance(repository, protocol):
        error_message = (
            f"Repository {type(repository).__name__} does not implement "
            f"{protocol.__name__} protocol. Missing or incorrect methods."
        )

        logger.error(
            "Repository protocol validation failed",
            extra={
                "repository_type": type(repository).__name__,
                "protocol_name": protocol.__name__,
            },
        )

        raise RepositoryValidationError(error_message)

    logger.debug(
        "Repository protocol validation passed",
        extra={
            "repository_type": type(repository).__name__,
            "protocol_name": protocol.__name__,
        },
    )


def ensure_repository_protocol(repository: object, protocol: Type[P]) -> P:
    """
    Validate and return a repository with proper type annotation.

    This provides both runtime validation and static type checking benefits.
    """
    validate_repository_protocol(repository, protocol)
    return repository  # type: ignore[return-value]


def format_validation_errors(error: ValidationError) -> List[Dict[str, Any]]:
    """Flatten Pydantic errors into ``[{"field": ..., "message": ...}]``."""
    return format_error_items(error.errors())


def format_error_items(
    items: Sequence[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    formatted = []
    for item in items:
        location = [
            str(part) for part in item.get("loc", ()) if part != "body"
        ]
        formatted.append(
            {
                "field": ".".join(location) or "body",
                "message": item.get("msg", "Invalid value"),
            }
        )
    return formatted


def validate_domain_model(data: Any, model_class: Type[M]) -> M:
    """
    Validate and convert untrusted data to a domain model using Pydantic.

    Args:
        data: Payload to validate (normally a decoded JSON object)
        model_class: Pydantic model class to validate against

    Returns:
        Validated domain model instance

    Raises:
        RequestValidationFailed: If validation fails, listing each field
            violation
    """
    if not isinstance(data, dict):
        logger.warning(
            "Payload is not an object",
            extra={
                "model_class": model_class.__name__,
                "payload_type": type(data).__name__,
            },
        )
        raise RequestValidationFailed(
            errors=[{"field": "body", "message": "Expected a JSON object"}]
        )

    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        errors = format_validation_errors(e)
        logger.warning(
            "Domain model validation failed",
            extra={
                "model_class": model_class.__name__,
                "validation_errors": errors,
            },
        )
        raise RequestValidationFailed(errors=errors) from e


# Convenience functions for common validation patterns
def ensure_address_repository(repo: object) -> Any:
    """Ensure an object satisfies the AddressRepository protocol"""
    from shop.repositories import AddressRepository

    return ensure_repository_protocol(repo, AddressRepository)  # type: ignore[type-abstract]


def ensure_customer_repository(repo: object) -> Any:
    """Ensure an object satisfies the CustomerRepository protocol"""
    from shop.repositories import CustomerRepository

    return ensure_repository_protocol(repo, CustomerRepository)  # type: ignore[type-abstract]


def ensure_product_repository(repo: object) -> Any:
    """Ensure an object satisfies the ProductRepository protocol"""
    from shop.repositories import ProductRepository

    return ensure_repository_protocol(repo, ProductRepository)  # type: ignore[type-abstract]


def ensure_cart_repository(repo: object) -> Any:
    """Ensure an object satisfies the CartRepository protocol"""
    from shop.repositories import CartRepository

    return ensure_repository_protocol(repo, CartRepository)  # type: ignore[type-abstract]


def ensure_order_repository(repo: object) -> Any:
    """Ensure an object satisfies the OrderRepository protocol"""
    from shop.repositories import OrderRepository

    return ensure_repository_protocol(repo, OrderRepository)  # type: ignore[type-abstract]


def ensure_payment_repository(repo: object) -> Any:
    """Ensure an object satisfies the PaymentRepository protocol"""
    from shop.repositories import PaymentRepository

    return ensure_repository_protocol(repo, PaymentRepository)  # type: ignore[type-abstract]


def ensure_shipment_repository(repo: object) -> Any:
    """Ensure an object satisfies the ShipmentRepository protocol"""
    from shop.repositories import ShipmentRepository

    return ensure_repository_protocol(repo, ShipmentRepository)  # type: ignore[type-abstract]


def ensure_payment_gateway(gateway: object) -> Any:
    """Ensure an object satisfies the PaymentGateway protocol"""
    from shop.repositories import PaymentGateway

    return ensure_repository_protocol(gateway, PaymentGateway)  # type: ignore[type-abstract]
