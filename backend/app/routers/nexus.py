"""
Compliance Tracker - Nexus Router

Upload a payroll or census file and find the states it references.
All endpoints require authentication.
"""
from typing import List, Optional
from uuid import uuid4
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import UserDB, NexusDataDB
from ..auth import get_current_user
from ..services.nexus import (
    analyze_nexus,
    generate_recommendations,
    normalize_file_type,
    decode_upload,
)
from ..services.renewals.clock import get_clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/nexus", tags=["nexus"])

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB


class AnalyzeResponse(BaseModel):
    id: str
    analysis_results: dict
    recommendations: List[dict]


class NexusHistoryItem(BaseModel):
    id: str
    file_name: str
    file_type: str
    upload_date: str
    analysis_results: dict
    recommendations: Optional[List[dict]] = None
    processed: bool


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_upload(
    file: UploadFile = File(...),
    file_type: Optional[str] = Form(None),
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    Analyze an uploaded payroll/census file for state nexus.
    """
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File exceeds 10MB limit")

    kind = normalize_file_type(file_type)
    analysis_results = analyze_nexus(decode_upload(content), kind, now=clock.now())
    recommendations = generate_recommendations(analysis_results)

    nexus_data = NexusDataDB(
        id=str(uuid4()),
        user_id=current_user.id,
        file_name=file.filename or "upload",
        file_type=kind,
        upload_date=clock.now(),
        analysis_results=analysis_results,
        recommendations=recommendations,
        processed=True,
    )
    db.add(nexus_data)
    db.commit()

    logger.info(
        f"Nexus analysis {nexus_data.id}: {len(analysis_results['statesIdentified'])} states "
        f"in {nexus_data.file_name}"
    )
    return AnalyzeResponse(
        id=nexus_data.id,
        analysis_results=analysis_results,
        recommendations=recommendations,
    )


@router.get("/history", response_model=List[NexusHistoryItem])
async def get_history(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Past analyses for the current user, newest first.
    """
    history = (
        db.query(NexusDataDB)
        .filter(NexusDataDB.user_id == current_user.id)
        .order_by(NexusDataDB.upload_date.desc())
        .all()
    )
    return [
        NexusHistoryItem(
            id=item.id,
            file_name=item.file_name,
            file_type=item.file_type,
            upload_date=item.upload_date.isoformat(),
            analysis_results=item.analysis_results or {},
            recommendations=item.recommendations,
            processed=bool(item.processed),
        )
        for item in history
    ]
