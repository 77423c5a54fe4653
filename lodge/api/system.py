import os
from importlib import metadata
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import require_roles
from ..config import settings

router = APIRouter(prefix="/system", tags=["system"])

DISTRIBUTION_NAME = "lodge-admin"


def _package_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0+local"


@router.get("/version")
def get_version() -> Dict[str, Any]:
    return {
        "version": _package_version(),
        "git_sha": os.getenv("GIT_SHA"),
        "build_time": os.getenv("BUILD_TIME"),
    }


@router.get("/health")
def health_check(db: Session = Depends(get_db)) -> Dict[str, Any]:
    db.execute(text("SELECT 1"))
    return {"status": "ok", "database": "ok"}


@router.get("/runtime", dependencies=[Depends(require_roles("ADMIN"))])
def get_runtime_diagnostics() -> Dict[str, Any]:
    """Expose non-sensitive runtime settings for debugging."""
    return {
        "email_backend": settings.email_backend,
        "email_host": settings.email_host,
        "email_port": settings.email_port,
        "file_storage_backend": settings.file_storage_backend,
        "api_base_url": settings.api_base_url,
        "lodge_name": settings.lodge_name,
        "log_level": settings.log_level,
    }
