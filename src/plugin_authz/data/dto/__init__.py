"""Upsert DTOs mapping manifest rules onto concrete permission rows."""

from .upsert import (
    UpsertDto,
    DbUpsertDto,
    FileUpsertDto,
    NotificationUpsertDto,
    ModuleUpsertDto,
    NetworkUpsertDto,
    CodecUpsertDto,
    DTO_CLASSES,
)

__all__ = [
    "UpsertDto",
    "DbUpsertDto",
    "FileUpsertDto",
    "NotificationUpsertDto",
    "ModuleUpsertDto",
    "NetworkUpsertDto",
    "CodecUpsertDto",
    "DTO_CLASSES",
]
