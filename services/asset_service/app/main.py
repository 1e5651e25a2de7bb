# services/asset_service/app/main.py
from fastapi import FastAPI, HTTPException, Depends, Request, UploadFile, File, Form, Body, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional, Dict

from core.config import Settings, settings as default_settings, logger as core_logger
from core.models import ApiResponse, AssetFile, AssetProfile, AssetReferenceUpdate, OwnerAssetReference
from core.storage import build_asset_profiles, get_asset_profile
from core.supabase_client import ClientFactory, service_client_factory
from . import crud
from .errors import AssetError, DbUpdateError
from .orchestrator import UploadOrchestrator, RetryPolicy
from .reclaimer import OrphanReclaimer
from .uploader import StorageUploader

logger = core_logger.getChild("AssetService").getChild("Main")

# HTTP status per workflow error code
ERROR_STATUS_CODES: Dict[str, int] = {
    "missing_file": 400,
    "invalid_owner_id": 400,
    "invalid_type": 415,
    "too_large": 413,
    "owner_not_found": 404,
    "reference_required": 409,
    "upload_error": 502,
    "db_update_error": 500,
}


def configure_state(app: FastAPI, settings: Settings) -> None:
    """Builds the per-process collaborators from an explicit settings object."""
    app.state.settings = settings
    app.state.profiles = build_asset_profiles(settings)
    app.state.client_factory = service_client_factory(settings)
    app.state.uploader = StorageUploader(client_factory=app.state.client_factory, settings=settings)
    app.state.reclaimer = OrphanReclaimer(app.state.uploader)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_state(app, default_settings)
    logger.info("Asset Service started. Storage uploader and reclaimer initialized.")
    yield
    reclaimer: OrphanReclaimer = app.state.reclaimer
    if reclaimer.pending:
        logger.info(f"Waiting for {reclaimer.pending} pending asset cleanup(s) before shutdown.")
    await reclaimer.drain()
    logger.info("Asset Service stopped.")


app = FastAPI(
    title="Asset Service",
    description="Validates, stores and links image assets of club records; reclaims orphaned files.",
    version="1.0.0",
    lifespan=lifespan
)


# --- Dependencies ---

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_reclaimer(request: Request) -> OrphanReclaimer:
    return request.app.state.reclaimer

def get_uploader(request: Request) -> StorageUploader:
    return request.app.state.uploader

def get_client_factory(request: Request) -> ClientFactory:
    return request.app.state.client_factory

def get_profile(kind: str, request: Request) -> AssetProfile:
    try:
        return get_asset_profile(kind, request.app.state.profiles)
    except KeyError:
        logger.warning(f"Request for unknown asset kind '{kind}'.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown asset kind '{kind}'")


def _raise_for_asset_error(e: AssetError) -> None:
    status_code = ERROR_STATUS_CODES.get(e.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    raise HTTPException(status_code=status_code, detail=f"{e.title}: {e.message}")


# --- Endpoints ---

@app.get("/health", response_model=ApiResponse, tags=["Meta"])
async def health_check(request: Request):
    reclaimer: Optional[OrphanReclaimer] = getattr(request.app.state, 'reclaimer', None)
    pending = reclaimer.pending if reclaimer else 0
    return ApiResponse(status="success", message=f"Asset Service is running (pending cleanups: {pending})")


@app.post("/uploads/{kind}", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, tags=["Uploads"])
async def upload_asset(
    profile: AssetProfile = Depends(get_profile),
    settings: Settings = Depends(get_settings),
    uploader: StorageUploader = Depends(get_uploader),
    reclaimer: OrphanReclaimer = Depends(get_reclaimer),
    file: Optional[UploadFile] = File(None),
    owner_id: Optional[str] = Form(None),
):
    """Validates and uploads one image, linking it to owner_id when given."""
    asset_file = None
    if file is not None:
        content = await file.read()
        asset_file = AssetFile(filename=file.filename or "upload", content_type=file.content_type, content=content)
    logger.info(f"Received upload for kind '{profile.kind.value}' (owner: {owner_id or 'none'}, "
                f"file: {asset_file.filename if asset_file else 'none'}).")

    orchestrator = UploadOrchestrator(
        profile=profile,
        uploader=uploader,
        reclaimer=reclaimer,
        policy=RetryPolicy.from_settings(settings),
        compensate_on_link_failure=settings.COMPENSATE_ON_LINK_FAILURE,
    )
    result = await orchestrator.run(asset_file, owner_id or None)

    if result.status == "success":
        return ApiResponse(status="success", data=result.model_dump(mode="json"), message=result.message)

    status_code = ERROR_STATUS_CODES.get(result.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    body = ApiResponse(status="error", data=result.model_dump(mode="json"), message=f"{result.title}: {result.message}")
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.get("/owners/{kind}/{owner_id}/asset", response_model=ApiResponse, tags=["Owners"])
async def get_owner_asset(
    owner_id: str,
    profile: AssetProfile = Depends(get_profile),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    try:
        url = await crud.get_asset_reference(profile, owner_id, client_factory=client_factory)
    except DbUpdateError as e:
        _raise_for_asset_error(e)
    reference = OwnerAssetReference(kind=profile.kind, owner_id=owner_id, url=url)
    return ApiResponse(status="success", data=reference.model_dump(mode="json"))


@app.put("/owners/{kind}/{owner_id}/asset", response_model=ApiResponse, tags=["Owners"])
async def replace_owner_asset(
    owner_id: str,
    payload: AssetReferenceUpdate = Body(...),
    profile: AssetProfile = Depends(get_profile),
    reclaimer: OrphanReclaimer = Depends(get_reclaimer),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """Points the owner record at a new URL; the previous asset is cleaned up in the background."""
    try:
        reference = await crud.replace_asset_reference(profile, owner_id, payload.url, reclaimer,
                                                       client_factory=client_factory)
    except DbUpdateError as e:
        _raise_for_asset_error(e)
    return ApiResponse(status="success", data=reference.model_dump(mode="json"), message="Image reference updated")


@app.delete("/owners/{kind}/{owner_id}", response_model=ApiResponse, tags=["Owners"])
async def delete_owner(
    owner_id: str,
    profile: AssetProfile = Depends(get_profile),
    reclaimer: OrphanReclaimer = Depends(get_reclaimer),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """Deletes the owner record; its asset is cleaned up in the background."""
    try:
        reference = await crud.delete_owner_record(profile, owner_id, reclaimer, client_factory=client_factory)
    except DbUpdateError as e:
        _raise_for_asset_error(e)
    return ApiResponse(status="success", data=reference.model_dump(mode="json"),
                       message=f"{profile.kind.value.capitalize()} deleted")
