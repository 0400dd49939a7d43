"""
Bulk import endpoint
"""

from typing import Any
from fastapi import APIRouter, Depends
from pydantic.alias_generators import to_snake

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import ImportRequest
from ..logging_config import get_logger, log_action
from ..rbac import Permission, User


logger = get_logger("olms.api.imports")

router = APIRouter()


def _snake_keys(record: Any) -> Any:
    if not isinstance(record, dict):
        return record
    return {to_snake(key): value for key, value in record.items()}


@router.post("")
async def import_records(
    request: ImportRequest,
    user: User = Depends(require_permission(Permission.BULK_IMPORT)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Import customers or loans record by record"""
    records = request.records
    if isinstance(records, list):
        records = [_snake_keys(record) for record in records]

    result = system.import_engine.import_records(request.type, records, user_id=user.id)
    log_action(
        logger, "info", "Bulk import completed",
        user_id=user.id, action="import", resource=request.type,
        extra=result.to_dict()
    )
    return {"results": result.to_dict()}
