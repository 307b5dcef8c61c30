"""
Compliance Tracker - State Resources Router

Guidance content per state and compliance type. Searchable by title and
description. All endpoints require authentication.
"""
from typing import List, Optional
from uuid import uuid4
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import UserDB, StateResourceDB
from ..auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/resources", tags=["resources"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ResourceRequest(BaseModel):
    state: str
    compliance_type: str
    title: str
    description: str
    required_documents: Optional[str] = None
    filing_frequency: Optional[str] = None
    fees: Optional[str] = None
    portal_link: Optional[str] = None
    additional_notes: Optional[str] = None


class ResourceUpdateRequest(BaseModel):
    state: Optional[str] = None
    compliance_type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    required_documents: Optional[str] = None
    filing_frequency: Optional[str] = None
    fees: Optional[str] = None
    portal_link: Optional[str] = None
    additional_notes: Optional[str] = None

    @field_validator('state', 'compliance_type', 'title', 'description')
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError('Field cannot be null')
        return v


class ResourceResponse(BaseModel):
    id: str
    state: str
    compliance_type: str
    title: str
    description: str
    required_documents: Optional[str] = None
    filing_frequency: Optional[str] = None
    fees: Optional[str] = None
    portal_link: Optional[str] = None
    additional_notes: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


def serialize_resource(resource: StateResourceDB) -> ResourceResponse:
    return ResourceResponse(
        id=resource.id,
        state=resource.state,
        compliance_type=resource.compliance_type,
        title=resource.title,
        description=resource.description,
        required_documents=resource.required_documents,
        filing_frequency=resource.filing_frequency,
        fees=resource.fees,
        portal_link=resource.portal_link,
        additional_notes=resource.additional_notes,
    )


def _get_resource(db: Session, resource_id: str) -> StateResourceDB:
    resource = db.query(StateResourceDB).filter(StateResourceDB.id == resource_id).first()
    if resource is None:
        raise HTTPException(status_code=404, detail="Resource not found")
    return resource


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("", response_model=List[ResourceResponse])
async def list_resources(
    state: Optional[str] = None,
    compliance_type: Optional[str] = None,
    search: Optional[str] = None,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List resources, filtered by state / compliance type and a free-text search.
    """
    query = db.query(StateResourceDB)
    if state:
        query = query.filter(StateResourceDB.state == state.upper())
    if compliance_type:
        query = query.filter(StateResourceDB.compliance_type == compliance_type)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            StateResourceDB.title.ilike(pattern),
            StateResourceDB.description.ilike(pattern),
        ))

    resources = query.order_by(StateResourceDB.state.asc(), StateResourceDB.compliance_type.asc()).all()
    return [serialize_resource(r) for r in resources]


@router.get("/{resource_id}", response_model=ResourceResponse)
async def get_resource(
    resource_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return serialize_resource(_get_resource(db, resource_id))


@router.post("", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_resource(
    request: ResourceRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    fields = request.model_dump()
    fields["state"] = fields["state"].upper()
    resource = StateResourceDB(id=str(uuid4()), **fields)
    db.add(resource)
    db.commit()
    db.refresh(resource)

    logger.info(f"Resource created: {resource.state} / {resource.compliance_type} by {current_user.email}")
    return serialize_resource(resource)


@router.put("/{resource_id}", response_model=ResourceResponse)
async def update_resource(
    resource_id: str,
    request: ResourceUpdateRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    resource = _get_resource(db, resource_id)
    for key, value in request.model_dump(exclude_unset=True).items():
        if key == "state" and value:
            value = value.upper()
        setattr(resource, key, value)

    db.commit()
    db.refresh(resource)
    return serialize_resource(resource)


@router.delete("/{resource_id}", response_model=MessageResponse)
async def delete_resource(
    resource_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    resource = _get_resource(db, resource_id)
    db.delete(resource)
    db.commit()
    return MessageResponse(message="Resource deleted successfully")
