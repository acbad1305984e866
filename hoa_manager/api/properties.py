from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_profile, require_admin
from ..models.models import Profile, Property
from ..schemas.schemas import PropertyCreate, PropertyImportResult, PropertyRead, PropertyUpdate
from ..services import access
from ..services.audit import audit_log
from ..services.properties import export_properties, import_properties

router = APIRouter()


def _check_owner(db: Session, owner_id) -> None:
    if owner_id is not None and db.get(Profile, owner_id) is None:
        raise HTTPException(status_code=400, detail="Owner profile not found")


@router.get("/", response_model=List[PropertyRead])
def list_properties(
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> List[Property]:
    query = access.scope_properties(db.query(Property).options(joinedload(Property.owner)), profile)
    return query.order_by(Property.created_at.desc(), Property.id.desc()).all()


@router.get("/export")
def export_properties_csv(
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> Response:
    report = export_properties(db)
    headers = {
        "Content-Disposition": f'attachment; filename="{report.filename}"',
        "Cache-Control": "no-store",
    }
    return Response(content=report.content, media_type="text/csv", headers=headers)


@router.post("/import", response_model=PropertyImportResult)
async def import_properties_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> PropertyImportResult:
    raw = await file.read()
    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="Upload must be a UTF-8 encoded CSV file.") from exc

    outcome = import_properties(db, content)
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="properties.import",
        target_entity_type="Property",
        after={"filename": file.filename, "created": outcome.created, "skipped": outcome.skipped},
    )
    return PropertyImportResult(created=outcome.created, skipped=outcome.skipped, skipped_units=outcome.skipped_units)


@router.get("/{property_id}", response_model=PropertyRead)
def get_property(
    property_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
) -> Property:
    prop = get_or_404(db, Property, property_id)
    if not access.can_view_property(profile, prop):
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


@router.post("/", response_model=PropertyRead, status_code=201)
def create_property(
    payload: PropertyCreate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Property:
    _check_owner(db, payload.owner_id)
    prop = Property(**payload.model_dump())
    db.add(prop)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="A property with that unit number already exists.") from exc
    db.refresh(prop)

    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="property.create",
        target_entity_type="Property",
        target_entity_id=str(prop.id),
        after={"unit_number": prop.unit_number, "owner_id": prop.owner_id},
    )
    return prop


@router.patch("/{property_id}", response_model=PropertyRead)
def update_property(
    property_id: int,
    payload: PropertyUpdate,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Property:
    prop = get_or_404(db, Property, property_id)
    updates = payload.model_dump(exclude_unset=True)
    if "owner_id" in updates:
        _check_owner(db, updates["owner_id"])

    before = {field: getattr(prop, field) for field in updates}
    for field, value in updates.items():
        setattr(prop, field, value)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="A property with that unit number already exists.") from exc
    db.refresh(prop)

    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="property.update",
        target_entity_type="Property",
        target_entity_id=str(prop.id),
        before=before,
        after=updates,
    )
    return prop


@router.delete("/{property_id}", status_code=204)
def delete_property(
    property_id: int,
    db: Session = Depends(get_db),
    actor: Profile = Depends(require_admin),
) -> Response:
    prop = get_or_404(db, Property, property_id)
    unit_number = prop.unit_number
    db.delete(prop)
    db.commit()
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="property.delete",
        target_entity_type="Property",
        target_entity_id=str(property_id),
        before={"unit_number": unit_number},
    )
    return Response(status_code=204)
