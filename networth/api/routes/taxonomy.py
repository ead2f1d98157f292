"""
Taxonomy API routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from networth.database import get_db
from networth.models.snapshot import AssetClass
from networth.schemas.assets import ErrorResponse, SubclassGroupResponse, SubclassListResponse, SubclassResponse
from networth.services.taxonomy_service import load_taxonomy

router = APIRouter()


@router.get(
    "/assets/subclasses",
    response_model=SubclassListResponse,
    responses={500: {"model": ErrorResponse, "description": "Taxonomy not available"}},
    summary="List asset classes and their subclasses",
)
async def list_subclasses(db: Session = Depends(get_db)) -> SubclassListResponse:
    grouped = load_taxonomy(db).by_class()
    classes = [
        SubclassGroupResponse(
            asset_class=asset_class,
            subclasses=[
                SubclassResponse(
                    subclass_code=entry.subclass_code,
                    display_name=entry.display_name,
                    risk_level=entry.risk_level,
                    expected_return=entry.expected_return,
                    description=entry.description,
                )
                for entry in grouped[asset_class]
            ],
        )
        for asset_class in AssetClass
        if asset_class in grouped
    ]
    return SubclassListResponse(classes=classes, total=sum(len(c.subclasses) for c in classes))
