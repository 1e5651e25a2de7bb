# services/api_gateway/app/routers/assets.py
from fastapi import APIRouter, HTTPException, Body, Request, Depends, UploadFile, File, Form
from fastapi.responses import JSONResponse
from core.models import ApiResponse, AssetReferenceUpdate
from core.config import settings
import httpx
import logging
from typing import Optional
from ..main import rate_limiter, verify_api_key

logger = logging.getLogger("SCS_Core").getChild("APIGateway").getChild("AssetRouter")

router = APIRouter(dependencies=[Depends(rate_limiter)])


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Dependency function to get the HTTP client from app state."""
    client = getattr(request.app.state, 'http_client', None)
    if not client:
        logger.error("HTTP client dependency not met: Client not available in application state.")
        raise HTTPException(status_code=503, detail="Gateway internal error: HTTP client not ready")
    return client


def _downstream_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
        return body.get('detail') or body.get('message') or response.text
    except Exception:
        return response.text


async def _forward(http_client: httpx.AsyncClient, method: str, path: str, context: str, **kwargs):
    """Calls the Asset Service and maps its failures onto gateway responses."""
    downstream_url = f"{settings.ASSET_SERVICE_URL}{path}"
    try:
        response = await http_client.request(method, downstream_url, **kwargs)
    except httpx.RequestError as e:
        logger.error(f"Could not connect to Asset Service at {downstream_url} ({context}): {e}")
        raise HTTPException(status_code=503, detail="Asset Service unavailable.")

    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        downstream_error = _downstream_detail(e.response)
        logger.error(f"Asset Service Error ({e.response.status_code}) for {context}: {downstream_error}", exc_info=False)
        try:
            body = e.response.json()
        except Exception:
            body = None
        # Upload failures carry the workflow result; pass it through untouched
        if isinstance(body, dict) and body.get("status") == "error" and "data" in body:
            return JSONResponse(status_code=e.response.status_code, content=body)
        raise HTTPException(status_code=e.response.status_code, detail=downstream_error)

    logger.info(f"Asset Service call successful (Status: {response.status_code}) for {context}")
    try:
        return ApiResponse(**response.json())
    except Exception as e:
        logger.error(f"Gateway error reading Asset Service response for {context}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Gateway Error")


@router.post("/{kind}/upload", response_model=ApiResponse, status_code=201, dependencies=[Depends(verify_api_key)])
async def route_upload_asset(
    kind: str,
    file: Optional[UploadFile] = File(None),
    owner_id: Optional[str] = Form(None),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Route an image upload to the Asset Service."""
    logger.info(f"Routing upload request: kind='{kind}', owner_id={owner_id}, file={file.filename if file else None}")
    files = None
    if file is not None:
        content = await file.read()
        files = {"file": (file.filename or "upload", content, file.content_type or "application/octet-stream")}
    data = {"owner_id": owner_id} if owner_id else None
    return await _forward(http_client, "POST", f"/uploads/{kind}", f"upload {kind}", files=files, data=data)


@router.get("/{kind}/{owner_id}", response_model=ApiResponse)
async def route_get_owner_asset(
    kind: str,
    owner_id: str,
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Route request for the current asset reference of an owner record."""
    logger.info(f"Routing get asset request: kind='{kind}', owner_id={owner_id}")
    return await _forward(http_client, "GET", f"/owners/{kind}/{owner_id}/asset", f"get {kind}:{owner_id}")


@router.put("/{kind}/{owner_id}", response_model=ApiResponse, dependencies=[Depends(verify_api_key)])
async def route_replace_owner_asset(
    kind: str,
    owner_id: str,
    payload: AssetReferenceUpdate = Body(...),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Route an asset reference replacement to the Asset Service."""
    logger.info(f"Routing replace asset request: kind='{kind}', owner_id={owner_id}")
    return await _forward(http_client, "PUT", f"/owners/{kind}/{owner_id}/asset", f"replace {kind}:{owner_id}",
                          json=payload.model_dump())


@router.delete("/{kind}/{owner_id}", response_model=ApiResponse, dependencies=[Depends(verify_api_key)])
async def route_delete_owner(
    kind: str,
    owner_id: str,
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Route an owner record deletion to the Asset Service."""
    logger.info(f"Routing delete request: kind='{kind}', owner_id={owner_id}")
    return await _forward(http_client, "DELETE", f"/owners/{kind}/{owner_id}", f"delete {kind}:{owner_id}")
