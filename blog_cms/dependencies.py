from fastapi import Header, HTTPException, Query

from blog_cms.auth import Identity
from blog_cms.errors import ErrorKind, ServiceResult

STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.PRECONDITION_FAILED: 409,
    ErrorKind.SLUG_EXHAUSTED: 409,
}


async def get_identity(
    x_user_id: str | None = Header(None),
    x_user_email: str | None = Header(None),
    x_user_name: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Identity | None:
    """
    Build the caller's ``Identity`` from headers set by the upstream
    identity gateway.  No ``X-User-Id`` means an anonymous caller; the
    service layer decides whether that is acceptable.
    """
    if not x_user_id:
        return None
    metadata = {"role": x_user_role} if x_user_role else {}
    return Identity(
        subject_id=x_user_id,
        email=x_user_email or "",
        name=x_user_name,
        metadata=metadata,
    )


def unwrap(result: ServiceResult):
    """Return the payload of a successful result or raise the mapped HTTP error."""
    if result.ok:
        return result.data
    raise HTTPException(
        status_code=STATUS_BY_KIND[result.kind],
        detail={"kind": result.kind.value, "errors": result.errors},
    )


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``page`` / ``limit`` query
    parameters.

    Bounds are enforced by the service-layer schemas (posts max 50,
    comments and users max 100) so an out-of-range value surfaces as a
    ``ValidationFailed`` result rather than FastAPI's own 422 body.
    """

    def __init__(
        self,
        page: int = Query(1, description="Page number (1-based)."),
        limit: int | None = Query(None, description="Items per page."),
    ) -> None:
        self.page = page
        self.limit = limit

    def as_payload(self, **extra) -> dict:
        """Query payload for a service call; unset values fall back to schema defaults."""
        payload = {"page": self.page, "limit": self.limit, **extra}
        return {k: v for k, v in payload.items() if v is not None}
