"""Pydantic response models for the listing API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TrackDescriptor(BaseModel):
    """One entry of a season listing."""

    artist: str = ""
    title: str
    ext: str = Field(..., description="File extension without the leading dot")
    cover: str = Field(..., description="Cached cover URL or the default cover URL")
    url: str = Field(..., description="Range-capable stream URL")


class ErrorResponse(BaseModel):
    error: str
