"""Operational error types raised by the services.

Everything derives from ``ValueError`` so callers that only care about
"the request was rejected" can keep catching that.
"""


class DomainError(ValueError):
    """Base class for expected, user-facing failures."""

    status_code = 400


class ValidationError(DomainError):
    """Input passed schema checks but breaks a business rule."""

    status_code = 422


class NotFoundError(DomainError):
    """Entity does not exist or belongs to another user."""

    status_code = 404


class ConflictError(DomainError):
    """Uniqueness violation or a concurrent modification."""

    status_code = 409


class UnauthorizedError(DomainError):
    """Missing or invalid caller identity."""

    status_code = 401


def not_found(entity: str) -> NotFoundError:
    return NotFoundError(f"{entity} not found")


def duplicate_template_name(category_type: str, name: str) -> ConflictError:
    return ConflictError(
        f'A custom {category_type} category named "{name}" already exists'
    )


def fields_required() -> ConflictError:
    return ConflictError("At least one custom field is required")
