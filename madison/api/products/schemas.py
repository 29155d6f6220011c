"""Schemas for product catalog maintenance endpoints."""

from typing import List

from pydantic import BaseModel, Field


class ImportProductsResponse(BaseModel):
    inserted: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    skipped_headers: List[str] = Field(default_factory=list, description="CSV headers that map to no product field.")
    errors: List[str] = Field(default_factory=list)


class MergeDuplicatesResponse(BaseModel):
    groups: int = Field(..., ge=0, description="Handles that had more than one product.")
    merged: int = Field(..., ge=0)
    deleted: int = Field(..., ge=0)
    kept_ids: List[str] = Field(default_factory=list)
