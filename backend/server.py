from fastapi import FastAPI, APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.middleware.cors import CORSMiddleware
import logging
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime, timezone
from threading import Lock

from icons_compositor import CompositionError
from icons_service import IconService
from icons_settings import IconSettings, load_settings

settings: IconSettings = load_settings()
service: Optional[IconService] = None

# Create the main app without a prefix
app = FastAPI(title="Icons for Markdown")

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


class RequestCounter:
    """Counts inbound HTTP requests for the /metrics endpoint."""

    def __init__(self):
        self._lock = Lock()
        self.value = 0

    def inc(self) -> None:
        with self._lock:
            self.value += 1

    def exposition(self) -> str:
        return (
            "# HELP icons_http_requests_total Total HTTP requests received.\n"
            "# TYPE icons_http_requests_total counter\n"
            f"icons_http_requests_total {self.value}\n"
        )


request_counter = RequestCounter()


class HealthStatus(BaseModel):
    status: str
    icons: int
    cache_entries: int
    time: str


def get_service() -> IconService:
    if service is None:
        raise HTTPException(status_code=503, detail="Icon service not available")
    return service


def parse_icon_names(raw: Optional[str]) -> List[str]:
    """Split the comma-separated `i` parameter; empty items are ignored."""
    names = [name.strip() for name in (raw or "").split(",")]
    return [name for name in names if name]


def parse_per_row(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        per_row = int(raw)
    except ValueError:
        per_row = 0
    if not 1 <= per_row <= settings.per_row_limit:
        raise HTTPException(
            status_code=400,
            detail=f"Icons per line must be a number between 1 and {settings.per_row_limit}",
        )
    return per_row


@app.middleware("http")
async def count_requests(request: Request, call_next):
    request_counter.inc()
    return await call_next(request)


# Route for generating and serving the combined icon image.
@app.get("/icons")
async def get_icons(
    i: Optional[str] = Query(None, description="Comma-separated icon names"),
    perline: Optional[str] = Query(None, description="Icons per row"),
    layout: Optional[str] = Query(None, description="grid or row"),
    output: Optional[str] = Query(None, alias="format", description="svg or webp"),
    icons: IconService = Depends(get_service),
):
    names = parse_icon_names(i)
    if not names:
        raise HTTPException(status_code=400, detail="You didn't specify any icons! Use '?i=icon1,icon2'")

    per_row = parse_per_row(perline)
    if layout is not None and layout not in ("grid", "row"):
        raise HTTPException(status_code=400, detail="layout must be 'grid' or 'row'")
    if output is not None and output not in ("svg", "webp"):
        raise HTTPException(status_code=400, detail="format must be 'svg' or 'webp'")

    try:
        image = await icons.compose(names, per_row=per_row, layout=layout, output=output)
    except CompositionError as e:
        logging.error(f"Error generating combined image: {e}")
        raise HTTPException(status_code=500, detail="Error generating image. Please try again later.")

    return Response(
        content=image.data,
        media_type=image.media_type,
        headers={"Cache-Control": "no-cache"},
    )


# Route for serving the list of all available icon names
@api_router.get("/icons", response_model=List[str])
async def list_icons(icons: IconService = Depends(get_service)):
    return icons.icon_names


@api_router.get("/health", response_model=HealthStatus)
async def health(icons: IconService = Depends(get_service)):
    return HealthStatus(
        status="ok" if icons.icon_names else "degraded",
        icons=len(icons.icon_names),
        cache_entries=len(icons.cache),
        time=datetime.now(timezone.utc).isoformat(),
    )


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Not Found")
    return PlainTextResponse(request_counter.exposition())


# Include the router in the main app
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=False,
    allow_origins=settings.origins or ["*"],
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

@app.on_event("startup")
async def startup_icon_service():
    global service
    service = IconService.from_settings(settings)
    # Refresh runs in the background; until it lands the index is empty.
    service.start()
    logging.info(
        "Icon service started: upstream=%s ttl=%ss output=%s",
        settings.upstream_base_url,
        int(settings.cache_ttl_seconds),
        settings.output_format,
    )


@app.on_event("shutdown")
async def shutdown_icon_service():
    global service
    if service is not None:
        await service.stop()
        service = None
