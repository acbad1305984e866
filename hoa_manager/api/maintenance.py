from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_profile, require_admin
from ..core.errors import http_error_for
from ..models.models import MaintenanceDocument, MaintenanceRequest, Profile
from ..schemas.schemas import (
    MaintenanceDocumentCreate,
    MaintenanceDocumentRead,
    MaintenanceRequestCreate,
    MaintenanceRequestRead,
    MaintenanceRequestUpdate,
    MaintenanceStatusUpdate,
)
from ..services import access
from ..services import maintenance as maintenance_service
from ..services.audit import audit_log

router = APIRouter()


def _get_visible_request(db: Session, profile: Profile, request_id: int) -> MaintenanceRequest:
    request = db.get(MaintenanceRequest, request_id)
    if not request or not access.can_view_maintenance(db, profile, request):
        raise HTTPException(status_code=404, detail="Maintenance request not found")
    return request


@router.get("/", response_model=List[MaintenanceRequestRead])
def list_requests(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> List[MaintenanceRequest]:
    query = access.scope_maintenance(db.query(MaintenanceRequest), db, profile)
    if status:
        query = query.filter(MaintenanceRequest.status == status)
    if category:
        query = query.filter(MaintenanceRequest.category == category)
    if priority:
        query = query.filter(MaintenanceRequest.priority == priority)
    return query.order_by(MaintenanceRequest.created_at.desc(), MaintenanceRequest.id.desc()).all()


@router.post("/", response_model=MaintenanceRequestRead, status_code=201)
def create_request(
    payload: MaintenanceRequestCreate,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> MaintenanceRequest:
    try:
        return maintenance_service.create_request(db, profile, payload.model_dump(exclude_unset=True))
    except (PermissionError, ValueError) as exc:
        db.rollback()
        raise http_error_for(exc) from exc


@router.get("/{request_id}", response_model=MaintenanceRequestRead)
def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> MaintenanceRequest:
    return _get_visible_request(db, profile, request_id)


@router.patch("/{request_id}", response_model=MaintenanceRequestRead)
def update_request(
    request_id: int,
    payload: MaintenanceRequestUpdate,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> MaintenanceRequest:
    request = _get_visible_request(db, profile, request_id)
    try:
        return maintenance_service.update_request(db, profile, request, payload.model_dump(exclude_unset=True))
    except (PermissionError, ValueError) as exc:
        db.rollback()
        raise http_error_for(exc) from exc


@router.post("/{request_id}/status", response_model=MaintenanceRequestRead)
def change_request_status(
    request_id: int,
    payload: MaintenanceStatusUpdate,
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_admin),
) -> MaintenanceRequest:
    request = _get_visible_request(db, profile, request_id)
    try:
        return maintenance_service.transition_status(
            db,
            profile,
            request,
            payload.status,
            completed_date=payload.completed_date,
            actual_cost=payload.actual_cost,
        )
    except (PermissionError, ValueError) as exc:
        db.rollback()
        raise http_error_for(exc) from exc


@router.delete("/{request_id}", status_code=204)
def delete_request(
    request_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> Response:
    request = _get_visible_request(db, profile, request_id)
    try:
        maintenance_service.delete_request(db, profile, request)
    except PermissionError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    return Response(status_code=204)


@router.get("/{request_id}/documents", response_model=List[MaintenanceDocumentRead])
def list_documents(
    request_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> List[MaintenanceDocument]:
    request = _get_visible_request(db, profile, request_id)
    return sorted(request.documents, key=lambda doc: (doc.created_at, doc.id), reverse=True)


@router.post("/{request_id}/documents", response_model=MaintenanceDocumentRead, status_code=201)
def add_document(
    request_id: int,
    payload: MaintenanceDocumentCreate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> MaintenanceDocument:
    request = _get_visible_request(db, actor, request_id)
    document = MaintenanceDocument(maintenance_request_id=request.id, uploaded_by=actor.id, **payload.model_dump())
    db.add(document)
    db.commit()
    db.refresh(document)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="maintenance.document_add",
        target_entity_type="MaintenanceDocument",
        target_entity_id=str(document.id),
        after={"maintenance_request_id": request.id, "file_name": document.file_name},
    )
    return document


@router.delete("/{request_id}/documents/{document_id}", status_code=204)
def delete_document(
    request_id: int,
    document_id: int,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Response:
    document = db.get(MaintenanceDocument, document_id)
    if not document or document.maintenance_request_id != request_id:
        raise HTTPException(status_code=404, detail="Document not found")
    db.delete(document)
    db.commit()
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="maintenance.document_delete",
        target_entity_type="MaintenanceDocument",
        target_entity_id=str(document_id),
    )
    return Response(status_code=204)
