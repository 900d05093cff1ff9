from fastapi import HTTPException, status


class DisputeDeskException(HTTPException):
    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)

    def __str__(self) -> str:
        return str(self.detail)


class NotFoundError(DisputeDeskException):
    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class PermissionDeniedError(DisputeDeskException):
    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class AuthorizationDenied(PermissionDeniedError):
    """A status transition was refused by the state table or capability check."""


class BadRequestError(DisputeDeskException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ValidationError(BadRequestError):
    """Input rejected before any mutation took place."""


class ConflictError(DisputeDeskException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class ExternalServiceError(DisputeDeskException):
    def __init__(self, service: str, detail: str | None = None, status_code: int = status.HTTP_502_BAD_GATEWAY):
        msg = f"External service error: {service}"
        if detail:
            msg += f" - {detail}"
        super().__init__(detail=msg, status_code=status_code)


class TransientNetworkError(ExternalServiceError):
    def __init__(self, service: str, operation: str):
        self.operation = operation
        super().__init__(
            service,
            f"Network error: failed to {operation}",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class VersionConflictError(ConflictError):
    """HTTP rendering of a lost optimistic write; carries the server snapshot."""

    def __init__(self, dispute_id: str, local_version: int | None, server_version: int, server_data: dict):
        HTTPException.__init__(
            self,
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": f"Dispute '{dispute_id}' was modified by someone else",
                "dispute_id": dispute_id,
                "local_version": local_version,
                "server_version": server_version,
                "server_data": server_data,
            },
        )
