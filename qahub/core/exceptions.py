"""
Domain exceptions for the Release Quality Hub.

Aggregates and services raise these; ``qahub.utils.errors`` turns each type
into a JSON error with a fixed status, so blueprints never build error
responses for domain failures themselves.

    raise NotFoundError(resource="Bug", resource_id=42, tenant_id=1)
    raise ValidationError("Bug title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """No row with this id is visible to the current tenant.

    Rows owned by another tenant raise this too, so a caller cannot probe for
    ids outside its scope. Only ``resource`` reaches the HTTP body; the id and
    tenant are kept for logs.
    """

    def __init__(self, resource: str, resource_id=None, tenant_id: int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        parts = [resource]
        if resource_id is not None:
            parts.append(f"id={resource_id}")
        parts.append("not found")
        if tenant_id is not None:
            parts.append(f"(tenant={tenant_id})")
        super().__init__(" ".join(parts))


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the domain or service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint): the data
    was well-formed but violated a business rule (empty title, bad version
    string, evaluating a terminal release).

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionError(ValidationError):
    """Raised when a state machine is asked to move along an edge it does not have.

    Maps to HTTP 409 (ERR_CONFLICT_STATE).

    Args:
        entity: Aggregate name ("Bug", "TestRun", "Release").
        current: Current state value.
        target: Requested state value.
        allowed: States reachable from ``current``.
        message: Optional override for the default message.
    """

    def __init__(
        self,
        entity: str,
        current: str,
        target: str,
        allowed=(),
        message: str | None = None,
    ) -> None:
        self.entity = entity
        self.current = str(current)
        self.target = str(target)
        self.allowed = sorted(str(s) for s in allowed)
        if message is None:
            message = (
                f"Cannot move {entity} from {self.current} to {self.target}. "
                f"Valid next states: {', '.join(self.allowed) or 'none'}"
            )
        super().__init__(
            message,
            details={"current": self.current, "target": self.target, "allowed": self.allowed},
        )


class ConflictError(Exception):
    """A unique key (release version per tenant) is already taken. HTTP 409."""

    def __init__(self, resource: str, field: str, value=None) -> None:
        self.resource, self.field, self.value = resource, field, value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class AIProviderError(RuntimeError):
    """Raised when no AI provider can be resolved for a tenant or a provider call fails."""
