from __future__ import annotations

import uuid
from typing import Annotated, cast

from fastapi import APIRouter, BackgroundTasks, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse

from doclens.schemas.errors import ApiErrorResponse, error_json
from doclens.schemas.indexing import DocumentUploadResponse, IndexingJobStatus
from doclens.services.indexing import IndexingOrchestrator
from doclens.services.indexing_status import IndexingStatusStore

_DEFAULT_FILENAME = "document.pdf"


def _get_indexing(request: Request) -> IndexingOrchestrator:
    orchestrator = getattr(request.app.state, "indexing", None)
    if orchestrator is None:  # pragma: no cover
        raise RuntimeError("Indexing orchestrator not configured")
    return cast(IndexingOrchestrator, orchestrator)


def _get_status_store(request: Request) -> IndexingStatusStore:
    store = getattr(request.app.state, "status_store", None)
    if store is None:  # pragma: no cover
        raise RuntimeError("Indexing status store not configured")
    return cast(IndexingStatusStore, store)


def _is_pdf(*, filename: str | None, content_type: str | None, data: bytes) -> bool:
    if content_type and content_type.lower().startswith("application/pdf"):
        return True
    if filename and filename.lower().endswith(".pdf"):
        return True
    return data.startswith(b"%PDF")


def build_documents_router() -> APIRouter:
    router = APIRouter(prefix="/v1/documents", tags=["documents"])

    @router.post(
        "",
        response_model=DocumentUploadResponse,
        status_code=202,
        responses={
            400: {"model": ApiErrorResponse},
            415: {"model": ApiErrorResponse},
        },
        summary="Upload a PDF and start indexing it",
    )
    async def upload_document(
        background_tasks: BackgroundTasks,
        indexing: Annotated[IndexingOrchestrator, Depends(_get_indexing)],
        file: UploadFile = File(...),
    ) -> DocumentUploadResponse | JSONResponse:
        data = await file.read()
        if not data:
            return error_json(
                status_code=400, code="empty_upload", message="Uploaded file is empty"
            )

        if not _is_pdf(filename=file.filename, content_type=file.content_type, data=data):
            return error_json(
                status_code=415,
                code="unsupported_media_type",
                message="Only PDF uploads are supported",
            )

        document_id = uuid.uuid4().hex
        status = await indexing.mark_pending(document_id)
        background_tasks.add_task(indexing.index_in_background, document_id, data)

        return DocumentUploadResponse(
            document_id=document_id,
            filename=file.filename or _DEFAULT_FILENAME,
            status=status,
        )

    @router.get(
        "/{document_id}/status",
        response_model=IndexingJobStatus,
        responses={404: {"model": ApiErrorResponse}},
        summary="Get the indexing status of a document",
    )
    async def get_status(
        document_id: str,
        status_store: Annotated[IndexingStatusStore, Depends(_get_status_store)],
    ) -> IndexingJobStatus | JSONResponse:
        status = await status_store.get_status(document_id)
        if status is None:
            return error_json(
                status_code=404, code="document_not_found", message="Document not found"
            )
        return status

    return router
