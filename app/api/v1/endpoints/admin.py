"""Admin-only endpoints."""

from fastapi import APIRouter, status

from app.dependencies import CurrentActor, DatabaseSession
from app.schemas.appointments import BulkStatusResponse, BulkStatusUpdate
from app.services.appointment_service import AppointmentService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post(
    "/appointments/bulk-status",
    response_model=BulkStatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Bulk appointment status update (admin only)",
)
async def bulk_update_appointment_status(
    data: BulkStatusUpdate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> BulkStatusResponse:
    """
    Apply up to 100 status changes atomically.

    Every operation is checked exactly like a single status update. If any
    operation fails, none of the batch is applied and the error names the
    failing operation.

    Args:
        data: Batch of operations
        actor: Authenticated administrator
        db: Database session

    Returns:
        Per-operation from/to statuses
    """
    service = AppointmentService(db)
    return await service.bulk_update_status(actor, data)
