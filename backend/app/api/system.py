"""
System information API endpoints.
"""

from typing import Dict, List

from fastapi import APIRouter
from pydantic import BaseModel

from .._version import __version__, __release_date__
from ..services.validators import ValidatorRegistry

router = APIRouter()


class VersionResponse(BaseModel):
    """Response model for version information."""
    version: str
    release_date: str


class DialectInfo(BaseModel):
    dialect: str
    validator: str
    capabilities: List[str]


@router.get("/version", response_model=VersionResponse)
async def get_version():
    """
    Get the current analyzer backend version and release date.

    Returns:
        VersionResponse: Current version information including release date
    """
    return VersionResponse(version=__version__, release_date=__release_date__)


@router.get("/dialects", response_model=List[DialectInfo])
async def list_dialects():
    """Registered dialect validators and the capabilities each one exposes."""
    info: Dict[str, Dict[str, object]] = ValidatorRegistry.list_validators()
    return [DialectInfo(dialect=name, **details) for name, details in sorted(info.items())]
