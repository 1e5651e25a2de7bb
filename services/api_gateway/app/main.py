# services/api_gateway/app/main.py
from fastapi import FastAPI, Request, HTTPException
from core.config import settings
from core.models import ApiResponse
import httpx
import time
import logging
from contextlib import asynccontextmanager

# Use logger configured in core.config
logger = logging.getLogger("SCS_Core").getChild("APIGateway")


# --- API Key Check for admin (mutating) routes ---
async def verify_api_key(request: Request):
    expected_api_key = settings.API_GATEWAY_KEY
    if not expected_api_key:
        return # Skip check if no key is configured

    provided_key = request.headers.get("X-API-Key")
    if not provided_key or provided_key != expected_api_key:
        client_host = request.client.host if request.client else "unknown"
        logger.warning(f"Unauthorized access attempt: Missing or incorrect API Key from {client_host}.")
        raise HTTPException(status_code=401, detail="Invalid or missing API Key")

# --- Rate Limiting ---
# In-memory, per process: NOT suitable for multi-instance deployments
RATE_LIMIT_STORE = {}

async def rate_limiter(request: Request):
    client_ip = request.client.host if request.client else "unknown"
    current_time = time.time()
    period = settings.RATE_LIMIT_PERIOD

    # Basic cleanup (inefficient for high load)
    for ip in list(RATE_LIMIT_STORE.keys()):
        if current_time - RATE_LIMIT_STORE[ip]['timestamp'] > period * 1.5:
            RATE_LIMIT_STORE.pop(ip, None)

    client_data = RATE_LIMIT_STORE.get(client_ip)
    if not client_data or current_time - client_data['timestamp'] >= period:
        RATE_LIMIT_STORE[client_ip] = {'count': 1, 'timestamp': current_time}
        return

    if client_data['count'] >= settings.RATE_LIMIT_MAX_CALLS:
        logger.warning(f"Rate limit exceeded for IP: {client_ip}")
        raise HTTPException(status_code=429, detail="Rate limit exceeded")
    client_data['count'] += 1
    client_data['timestamp'] = current_time # Update timestamp on activity


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Initialize the client and store it in app.state
    logger.info("API Gateway lifespan startup: Initializing HTTPX Client.")
    try:
        app.state.http_client = httpx.AsyncClient(timeout=60.0)
        logger.info("HTTPX Client initialized and stored in app.state.")
    except Exception as e:
        logger.error(f"Failed to initialize HTTPX client during startup: {e}", exc_info=True)
        app.state.http_client = None

    yield # Application runs here

    # Shutdown: Close the client if it exists
    logger.info("API Gateway lifespan shutdown: Cleaning up resources.")
    if getattr(app.state, 'http_client', None):
        await app.state.http_client.aclose()
        app.state.http_client = None
        logger.info("HTTPX Client closed.")
    else:
        logger.warning("HTTPX Client was not available in app.state during shutdown.")

# --- FastAPI App ---
app = FastAPI(
    title="Startup Club API Gateway",
    description="Entry point for the club site's admin back-office",
    version="1.0.0",
    lifespan=lifespan
)

# --- Health Check ---
@app.get("/health", response_model=ApiResponse, tags=["Meta"])
async def health_check(request: Request):
    client_status = "initialized" if getattr(request.app.state, 'http_client', None) else "NOT initialized"
    return ApiResponse(status="success", message=f"API Gateway is running (HTTP Client: {client_status})")

# --- Routing ---
# Import routers AFTER app is defined
from .routers import assets

app.include_router(assets.router, prefix="/assets", tags=["Assets"])

@app.get("/", response_model=ApiResponse, tags=["Meta"])
async def read_root():
    return ApiResponse(status="success", message="Welcome to the Startup Club API Gateway")
