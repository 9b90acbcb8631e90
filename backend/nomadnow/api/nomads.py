"""Nomad directory endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel

from nomadnow.domain.directory.engine import NomadDirectory
from nomadnow.domain.directory.registry import DirectoryRegistry, get_registry
from nomadnow.domain.directory.schemas import (
	DirectoryView,
	FiltersOut,
	FiltersUpdate,
	InvitationPayload,
	InvitationResponse,
	NomadCard,
	PaginationOut,
	PreferencesOut,
	StatsOut,
)
from nomadnow.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/nomads", tags=["nomads"])


class StorageSignalPayload(BaseModel):
	key: Optional[str] = None


async def get_directory(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	registry: DirectoryRegistry = Depends(get_registry),
) -> NomadDirectory:
	return await registry.get(auth_user)


def _view(engine: NomadDirectory) -> DirectoryView:
	snapshot = engine.snapshot
	meta = engine.pagination
	return DirectoryView(
		items=[NomadCard.from_record(record) for record in engine.records],
		stats=StatsOut.from_stats(snapshot.stats),
		filters=FiltersOut.from_state(engine.filters),
		pagination=PaginationOut(
			mode=meta.mode,
			page_size=meta.page_size,
			current_page=meta.current_page,
			total_pages=meta.total_pages,
			has_more=meta.has_more,
			total=meta.total,
		),
		loading=engine.loading,
		error=engine.error,
		used_sample=snapshot.used_sample,
		generated_at=snapshot.generated_at,
	)


def _preferences(engine: NomadDirectory) -> PreferencesOut:
	return PreferencesOut(favorites=engine.get_favorites(), hidden=engine.get_hidden())


@router.get("", response_model=DirectoryView)
async def list_nomads(engine: NomadDirectory = Depends(get_directory)) -> DirectoryView:
	return _view(engine)


@router.put("/filters", response_model=DirectoryView)
async def update_filters(payload: FiltersUpdate, engine: NomadDirectory = Depends(get_directory)) -> DirectoryView:
	try:
		engine.set_filters(**payload.changes())
	except ValueError as exc:
		raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
	return _view(engine)


@router.delete("/filters", response_model=DirectoryView)
async def reset_filters(engine: NomadDirectory = Depends(get_directory)) -> DirectoryView:
	engine.reset_filters()
	return _view(engine)


@router.post("/page/{number}", response_model=DirectoryView)
async def go_to_page(
	number: int = Path(..., ge=1),
	engine: NomadDirectory = Depends(get_directory),
) -> DirectoryView:
	if not engine.page(number):
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="page_out_of_range")
	return _view(engine)


@router.post("/load-more", response_model=DirectoryView)
async def load_more(engine: NomadDirectory = Depends(get_directory)) -> DirectoryView:
	engine.load_more()
	return _view(engine)


@router.post("/refresh", response_model=DirectoryView)
async def refresh(engine: NomadDirectory = Depends(get_directory)) -> DirectoryView:
	await engine.retry()
	return _view(engine)


@router.post("/signals/profile-updated", response_model=DirectoryView)
async def profile_updated(engine: NomadDirectory = Depends(get_directory)) -> DirectoryView:
	await engine.notify_profile_updated()
	return _view(engine)


@router.post("/signals/storage-changed", response_model=DirectoryView)
async def storage_changed(
	payload: StorageSignalPayload,
	engine: NomadDirectory = Depends(get_directory),
) -> DirectoryView:
	await engine.notify_storage_changed(payload.key)
	return _view(engine)


@router.get("/preferences", response_model=PreferencesOut)
async def get_preferences(engine: NomadDirectory = Depends(get_directory)) -> PreferencesOut:
	return _preferences(engine)


@router.post("/{nomad_id}/favorite", response_model=PreferencesOut)
async def add_favorite(nomad_id: str, engine: NomadDirectory = Depends(get_directory)) -> PreferencesOut:
	await engine.add_favorite(nomad_id)
	return _preferences(engine)


@router.delete("/{nomad_id}/favorite", response_model=PreferencesOut)
async def remove_favorite(nomad_id: str, engine: NomadDirectory = Depends(get_directory)) -> PreferencesOut:
	await engine.remove_favorite(nomad_id)
	return _preferences(engine)


@router.post("/{nomad_id}/hide", response_model=PreferencesOut)
async def hide_nomad(nomad_id: str, engine: NomadDirectory = Depends(get_directory)) -> PreferencesOut:
	await engine.hide(nomad_id)
	return _preferences(engine)


@router.delete("/{nomad_id}/hide", response_model=PreferencesOut)
async def show_nomad(nomad_id: str, engine: NomadDirectory = Depends(get_directory)) -> PreferencesOut:
	await engine.show(nomad_id)
	return _preferences(engine)


@router.post("/{nomad_id}/invitations", response_model=InvitationResponse)
async def send_invitation(
	nomad_id: str,
	payload: InvitationPayload,
	engine: NomadDirectory = Depends(get_directory),
) -> InvitationResponse:
	sent = await engine.send_invitation(payload.type, nomad_id, payload.message)
	return InvitationResponse(sent=sent)


@router.get("/{nomad_id}", response_model=NomadCard)
async def get_nomad(nomad_id: str, engine: NomadDirectory = Depends(get_directory)) -> NomadCard:
	record = engine.get_record(nomad_id)
	if record is None:
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="nomad_not_found")
	return NomadCard.from_record(record)
