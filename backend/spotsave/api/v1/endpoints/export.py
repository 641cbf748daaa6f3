from fastapi import APIRouter
from fastapi.responses import StreamingResponse
import structlog

from spotsave.core.exceptions import ValidationError
from spotsave.schemas.aws import ExportRequest
from spotsave.services.export_service import build_export_csv, export_filename

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("")
async def export_csv(request: ExportRequest):
    """Download the cost summary and recommendations as CSV"""
    if request.cost_data is None or request.recommendations_data is None:
        raise ValidationError("Cost data and recommendations are required")

    content = build_export_csv(request.cost_data, request.recommendations_data)
    filename = export_filename()
    logger.info("Generated CSV export", filename=filename)

    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
