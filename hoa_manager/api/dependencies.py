from typing import Generator, Type, TypeVar

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..config import SessionLocal

ModelT = TypeVar("ModelT")


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_or_404(db: Session, model: Type[ModelT], object_id: int) -> ModelT:
    instance = db.get(model, object_id)
    if instance is None:
        raise HTTPException(status_code=404, detail=f"{model.__name__} not found")
    return instance
