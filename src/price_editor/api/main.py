import logging
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Add src to path for internal imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from price_editor import __version__
from price_editor.config.settings import get_settings
from price_editor.exceptions import CatalogError, ContextError, WorkflowError
from price_editor.api.sessions_api import router as sessions_router, gtm_router
from price_editor.api import state

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Price Editor API",
    description="Price change workflow: context, price matrix, review and GTM commit",
    version=__version__
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions_router)
app.include_router(gtm_router)


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(WorkflowError)
@app.exception_handler(ContextError)
async def conflict_handler(request: Request, exc: Exception):
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {"status": "online", "message": "Price Editor API Active"}


@app.get("/system/status")
async def get_status():
    return {
        "version": __version__,
        "open_sessions": len(state.get_sessions()),
        "catalog": str(settings.catalog_csv),
        "gtm_store": str(settings.gtm_store),
    }
