import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.dependencies import get_db, get_document_registry
from cargoledger.document_registry.service import DocumentRegistry
from cargoledger.schemas.document import DocumentDetail, DocumentVersionResponse

router = APIRouter()


@router.get("/{document_id}", response_model=DocumentDetail)
async def get_document(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    registry: DocumentRegistry = Depends(get_document_registry),
) -> DocumentDetail:
    found = await registry.get_document_with_versions(db, document_id)
    if found is None:
        raise HTTPException(status_code=404, detail="Document not found")
    document, versions = found

    detail = DocumentDetail.model_validate(document)
    detail.versions = [DocumentVersionResponse.model_validate(v) for v in versions]
    return detail
