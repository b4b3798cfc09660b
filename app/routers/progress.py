import logging
import os
import uuid
import datetime as dt
from typing import Annotated, List

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth import dependencies
from app.auth.dependencies import Actor
from app.config import settings
from app.core.responses import StandardResponse
from app.database import get_db
from app.models.enums import ChangeEvent
from app.models.progress import ProgressPhoto, ProgressRecord
from app.services.ownership import get_client_in_reach_or_404
from app.services.realtime import ChangeFeed, get_change_feed

logger = logging.getLogger(__name__)

router = APIRouter()

PHOTO_SUBDIR = "progress_photos"
IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/heic": ".heic",
}


class Measurements(BaseModel):
    chest: float | None = Field(default=None, gt=0)
    waist: float | None = Field(default=None, gt=0)
    hips: float | None = Field(default=None, gt=0)
    arms: float | None = Field(default=None, gt=0)
    thighs: float | None = Field(default=None, gt=0)


class ProgressPhotoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    url: str
    content_type: str
    size_bytes: int
    created_at: dt.datetime


class ProgressRecordCreate(BaseModel):
    client_id: uuid.UUID
    date: dt.date
    weight: float = Field(gt=0, le=500)
    measurements: Measurements | None = None
    notes: str | None = None


class ProgressRecordUpdate(BaseModel):
    date: dt.date | None = None
    weight: float | None = Field(default=None, gt=0, le=500)
    measurements: Measurements | None = None
    notes: str | None = None


class ProgressRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    date: dt.date
    weight: float
    measurements: Measurements | None = None
    notes: str | None = None
    photos: List[ProgressPhotoResponse] = Field(default_factory=list)


class WeightTrend(BaseModel):
    records: int
    first_date: dt.date | None = None
    first_weight: float | None = None
    latest_date: dt.date | None = None
    latest_weight: float | None = None
    change: float | None = None


def _measurements_dict(measurements: Measurements | None) -> dict | None:
    if measurements is None:
        return None
    return measurements.model_dump(exclude_none=True) or None


async def _get_record_or_404(
    db: AsyncSession, record_id: uuid.UUID, actor: Actor
) -> tuple[ProgressRecord, uuid.UUID]:
    """Return the record with the trainer id of its client."""
    stmt = select(ProgressRecord).where(ProgressRecord.id == record_id).options(selectinload(ProgressRecord.photos))
    record = (await db.execute(stmt)).scalar_one_or_none()
    if record is None:
        raise HTTPException(status_code=404, detail="Progress record not found")
    try:
        client = await get_client_in_reach_or_404(db, actor, record.client_id)
    except HTTPException:
        raise HTTPException(status_code=404, detail="Progress record not found")
    return record, client.trainer_id


def _publish(feed: ChangeFeed, event: ChangeEvent, record: ProgressRecord, trainer_id: uuid.UUID) -> None:
    feed.publish("progress_records", event, record.id, trainer_id=trainer_id, client_id=record.client_id)


def _photo_path(url: str) -> str:
    relative = url.removeprefix("/static/").lstrip("/")
    return os.path.join(settings.MEDIA_ROOT, relative)


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        logger.warning("Photo file %s was already gone", path)


@router.get("", response_model=StandardResponse[List[ProgressRecordResponse]])
async def list_progress_records(
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    client_id: uuid.UUID = Query(...),
):
    """Records of one client, newest first."""
    await get_client_in_reach_or_404(db, actor, client_id)
    stmt = (
        select(ProgressRecord)
        .where(ProgressRecord.client_id == client_id)
        .options(selectinload(ProgressRecord.photos))
        .order_by(ProgressRecord.date.desc(), ProgressRecord.created_at.desc())
    )
    records = (await db.execute(stmt)).scalars().all()
    return StandardResponse(data=[ProgressRecordResponse.model_validate(r) for r in records])


@router.get("/trend", response_model=StandardResponse[WeightTrend])
async def read_weight_trend(
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    client_id: uuid.UUID = Query(...),
):
    await get_client_in_reach_or_404(db, actor, client_id)
    stmt = (
        select(ProgressRecord.date, ProgressRecord.weight)
        .where(ProgressRecord.client_id == client_id)
        .order_by(ProgressRecord.date.asc(), ProgressRecord.created_at.asc())
    )
    rows = (await db.execute(stmt)).all()
    if not rows:
        return StandardResponse(data=WeightTrend(records=0))

    first, latest = rows[0], rows[-1]
    return StandardResponse(
        data=WeightTrend(
            records=len(rows),
            first_date=first.date,
            first_weight=first.weight,
            latest_date=latest.date,
            latest_weight=latest.weight,
            change=round(latest.weight - first.weight, 2),
        )
    )


@router.get("/{record_id}", response_model=StandardResponse[ProgressRecordResponse])
async def read_progress_record(
    record_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    record, _ = await _get_record_or_404(db, record_id, actor)
    return StandardResponse(data=ProgressRecordResponse.model_validate(record))


@router.post("", response_model=StandardResponse[ProgressRecordResponse])
async def create_progress_record(
    data: ProgressRecordCreate,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    """Trainers log progress for their clients; clients may log their own."""
    client = await get_client_in_reach_or_404(db, actor, data.client_id)
    record = ProgressRecord(
        client_id=client.id,
        date=data.date,
        weight=data.weight,
        measurements=_measurements_dict(data.measurements),
        notes=data.notes,
        photos=[],
    )
    db.add(record)
    await db.commit()

    _publish(feed, ChangeEvent.INSERT, record, client.trainer_id)
    return StandardResponse(data=ProgressRecordResponse.model_validate(record), message="Progress recorded")


@router.put("/{record_id}", response_model=StandardResponse[ProgressRecordResponse])
async def update_progress_record(
    record_id: uuid.UUID,
    data: ProgressRecordUpdate,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    record, trainer_id = await _get_record_or_404(db, record_id, actor)
    update_data = data.model_dump(exclude_unset=True, exclude={"measurements"})
    for field, value in update_data.items():
        if field in {"date", "weight"} and value is None:
            continue
        setattr(record, field, value)
    if "measurements" in data.model_fields_set:
        record.measurements = _measurements_dict(data.measurements)
    await db.commit()

    _publish(feed, ChangeEvent.UPDATE, record, trainer_id)
    return StandardResponse(data=ProgressRecordResponse.model_validate(record), message="Progress updated")


@router.delete("/{record_id}", response_model=StandardResponse)
async def delete_progress_record(
    record_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    record, trainer_id = await _get_record_or_404(db, record_id, actor)
    paths = [_photo_path(photo.url) for photo in record.photos]
    await db.delete(record)
    await db.commit()
    for path in paths:
        _remove_file(path)

    _publish(feed, ChangeEvent.DELETE, record, trainer_id)
    return StandardResponse(message="Progress record deleted")


@router.post("/{record_id}/photos", response_model=StandardResponse[ProgressPhotoResponse])
async def upload_progress_photo(
    record_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    file: UploadFile = File(...),
):
    """Store an image under the client's photo folder and attach it to the record."""
    record, trainer_id = await _get_record_or_404(db, record_id, actor)

    raw_content_type = (file.content_type or "").lower()
    content_type = raw_content_type.split(";")[0].strip()
    if content_type not in IMAGE_EXTENSIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported media type: {raw_content_type or 'unknown'}")

    ext = os.path.splitext(file.filename or "")[1].lower() or IMAGE_EXTENSIONS[content_type]
    client_dir = os.path.join(settings.MEDIA_ROOT, PHOTO_SUBDIR, str(record.client_id))
    os.makedirs(client_dir, exist_ok=True)

    file_name = f"{uuid.uuid4()}{ext}"
    file_path = os.path.join(client_dir, file_name)

    total = 0
    with open(file_path, "wb") as out_file:
        while True:
            chunk = await file.read(1024 * 1024)
            if not chunk:
                break
            total += len(chunk)
            if total > settings.MAX_PHOTO_BYTES:
                out_file.close()
                _remove_file(file_path)
                raise HTTPException(status_code=400, detail="Photo exceeds allowed size")
            out_file.write(chunk)

    photo = ProgressPhoto(
        progress_record_id=record.id,
        url=f"/static/{PHOTO_SUBDIR}/{record.client_id}/{file_name}",
        content_type=content_type,
        size_bytes=total,
    )
    record.photos.append(photo)
    await db.commit()
    logger.info("Stored progress photo %s (%d bytes) for record %s", photo.id, total, record.id)

    _publish(feed, ChangeEvent.UPDATE, record, trainer_id)
    return StandardResponse(data=ProgressPhotoResponse.model_validate(photo), message="Photo uploaded")


@router.delete("/{record_id}/photos/{photo_id}", response_model=StandardResponse)
async def delete_progress_photo(
    record_id: uuid.UUID,
    photo_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    record, trainer_id = await _get_record_or_404(db, record_id, actor)
    photo = next((p for p in record.photos if p.id == photo_id), None)
    if photo is None:
        raise HTTPException(status_code=404, detail="Photo not found")

    path = _photo_path(photo.url)
    record.photos.remove(photo)
    await db.commit()
    _remove_file(path)

    _publish(feed, ChangeEvent.UPDATE, record, trainer_id)
    return StandardResponse(message="Photo deleted")
