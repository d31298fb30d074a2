"""Exception handlers mapping engine errors to HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from approvalflow.core.errors import ApprovalFlowError, ErrorCategory

logger = logging.getLogger(__name__)

CATEGORY_STATUS = {
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorCategory.CONFIGURATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCategory.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCategory.INTEGRATION: status.HTTP_502_BAD_GATEWAY,
    ErrorCategory.INTEGRITY: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def approval_flow_error_handler(request: Request, exc: ApprovalFlowError) -> JSONResponse:
    status_code = CATEGORY_STATUS.get(exc.category, status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApprovalFlowError, approval_flow_error_handler)
