"""
Reference data schemas: sites, locations, stages, suppliers, and the merge
request/response shapes shared by all four kinds.
"""

from typing import Optional

from pydantic import Field, field_validator

from procurement.schemas.common import BaseSchema, IDSchema


# ── Sites ────────────────────────────────────────────────────────────────────


class SiteIn(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    site_letter: str = Field(..., min_length=1, max_length=1)
    address: Optional[str] = None
    active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Site name is required")
        return v

    @field_validator("site_letter")
    @classmethod
    def upper_letter(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError("Site letter must be a single letter")
        return v.upper()


class SiteResponse(IDSchema):
    name: str
    site_letter: str
    address: Optional[str]
    active: bool


# ── Locations ────────────────────────────────────────────────────────────────


class LocationIn(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    type: Optional[str] = Field(None, max_length=100)
    site_id: int
    active: bool = True


class LocationResponse(IDSchema):
    name: str
    type: Optional[str]
    site_id: int
    active: bool


# ── Stages ───────────────────────────────────────────────────────────────────


class StageIn(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    active: bool = True


class StageResponse(IDSchema):
    name: str
    active: bool


# ── Suppliers ────────────────────────────────────────────────────────────────


class SupplierIn(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    active: bool = True


class SupplierResponse(IDSchema):
    name: str
    contact_person: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    active: bool


# ── Merge ────────────────────────────────────────────────────────────────────


class MergedEntity(BaseSchema):
    id: int
    name: str


class MergeResponse(BaseSchema):
    success: bool = True
    message: str
    merged_into: MergedEntity
    deleted: MergedEntity
    repointed: dict[str, int]
    discarded: dict[str, int] = {}
    audit_id: int


class LocationMergeRequest(BaseSchema):
    keep_location_id: int
    merge_location_id: int


class StageMergeRequest(BaseSchema):
    keep_stage_id: int
    merge_stage_id: int


class SiteMergeRequest(BaseSchema):
    keep_site_id: int
    merge_site_id: int


class SupplierMergeRequest(BaseSchema):
    keep_supplier_id: int
    merge_supplier_id: int
