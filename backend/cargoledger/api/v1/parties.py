import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.dependencies import get_db, get_party_registry
from cargoledger.party_registry.service import PartyRegistry
from cargoledger.schemas.party import PartyResponse

router = APIRouter()


@router.get("/{party_id}", response_model=PartyResponse)
async def get_party(
    party_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    registry: PartyRegistry = Depends(get_party_registry),
) -> PartyResponse:
    party = await registry.get_party(db, party_id)
    if party is None:
        raise HTTPException(status_code=404, detail="Party not found")

    response = PartyResponse.model_validate(party)
    response.email_domains = await registry.get_domains(db, party_id)
    return response
