from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_profile
from ..models.models import Profile
from ..schemas.schemas import DashboardSummary
from ..services.dashboard import build_dashboard

router = APIRouter()


@router.get("/dashboard", response_model=DashboardSummary)
def read_dashboard(
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> dict:
    return build_dashboard(db, profile)
