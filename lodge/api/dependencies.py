from typing import Generator, Type, TypeVar

from sqlalchemy.orm import Session

from ..config import SessionLocal
from ..core.errors import NotFoundError

ModelT = TypeVar("ModelT")


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_or_404(db: Session, model: Type[ModelT], object_id: int, label: str) -> ModelT:
    instance = db.get(model, object_id)
    if instance is None:
        raise NotFoundError(f"{label} not found")
    return instance
