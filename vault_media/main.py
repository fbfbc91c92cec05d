"""
Vault Media Service - FastAPI Application
"""
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import logging
import psutil
import re
from datetime import datetime, timezone
from typing import List, Optional

from .config import Settings, settings as default_settings
from .commands import VaultMediaService
from .models import (
    BatchReport, CreationEvent, HealthCheck, IngestResult, NoticeModel,
    OrphanReport, PageResult, ProcessAllRequest, ProcessDocumentRequest,
    WorkspaceState,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def get_service(request: Request) -> VaultMediaService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not started")
    return service


def create_app(settings: Optional[Settings] = None, service: Optional[VaultMediaService] = None) -> FastAPI:
    """Build the API for one vault"""
    settings = settings or default_settings

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json"
    )
    app.state.settings = settings
    app.state.service = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        """Open the vault and subscribe the real-time ingest handler"""
        app.state.service = service or VaultMediaService(settings)
        await app.state.service.startup()
        logger.info(f"Serving vault {app.state.service.vault.root}")

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.service is not None:
            await app.state.service.shutdown()
            app.state.service = None

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "api_docs": f"{settings.api_prefix}/docs"
        }

    @app.get(f"{settings.api_prefix}/health", response_model=HealthCheck)
    async def health_check(request: Request):
        """Health check endpoint"""
        service = get_service(request)
        try:
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage(str(service.vault.root))
            system_metrics = {
                "cpu_usage": psutil.cpu_percent(interval=None),
                "memory_usage": memory.percent,
                "disk_free_gb": disk.free / (1024**3),
                "active_notices": len(service.notifier.active()),
            }
            return HealthCheck(
                status="healthy",
                timestamp=datetime.now(timezone.utc),
                version=settings.app_version,
                vault_path=str(service.vault.root),
                media_root=service.store.root,
                realtime_update=service.ingest.enabled,
                system_metrics=system_metrics,
            )
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unhealthy")

    @app.post(f"{settings.api_prefix}/documents/process", response_model=PageResult)
    async def process_document(body: ProcessDocumentRequest, request: Request):
        """Process one document (the active one when no path is given)"""
        service = get_service(request)
        try:
            return await service.process_active_document(body.path, silent=body.silent)
        except FileNotFoundError:
            raise HTTPException(status_code=404, detail=f"Document not found: {body.path}")
        except (LookupError, PermissionError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Document processing failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post(f"{settings.api_prefix}/documents/process-all", response_model=BatchReport)
    async def process_all(request: Request, body: Optional[ProcessAllRequest] = None):
        """Process every document that passes the include/exclude filters"""
        service = get_service(request)
        body = body or ProcessAllRequest()
        try:
            return await service.process_all_documents(body.included_file_regex, body.excluded_folders)
        except re.error as e:
            raise HTTPException(status_code=400, detail=f"Invalid include pattern: {e}")
        except Exception as e:
            logger.error(f"Batch processing failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get(f"{settings.api_prefix}/orphans", response_model=OrphanReport)
    async def list_orphans(request: Request, store_only: bool = False):
        """List images no document links to"""
        service = get_service(request)
        try:
            return await service.list_orphan_images(store_only=store_only)
        except Exception as e:
            logger.error(f"Orphan scan failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get(f"{settings.api_prefix}/notices", response_model=List[NoticeModel])
    async def list_notices(request: Request, active_only: bool = True):
        service = get_service(request)
        notices = service.notifier.active() if active_only else service.notifier.history()
        return [NoticeModel(**vars(n)) for n in notices]

    @app.get(f"{settings.api_prefix}/workspace", response_model=WorkspaceState)
    async def get_workspace(request: Request):
        workspace = get_service(request).workspace
        return WorkspaceState(active_document=workspace.active_document(), cursor_line=workspace.cursor_line())

    @app.put(f"{settings.api_prefix}/workspace", response_model=WorkspaceState)
    async def set_workspace(state: WorkspaceState, request: Request):
        """Record the editor's active document and cursor line"""
        get_service(request).workspace.set_active(state.active_document, state.cursor_line)
        return state

    @app.post(f"{settings.api_prefix}/events/created", response_model=List[IngestResult])
    async def file_created(event: CreationEvent, request: Request):
        """Creation event webhook for newly saved binary files"""
        service = get_service(request)
        if event.active_document is None:
            event = event.model_copy(update={"active_document": service.workspace.active_document()})
        return await service.file_created(event)

    return app


configure_logging(default_settings.log_level)
app = create_app()


def run_server(settings: Optional[Settings] = None):
    """Run the FastAPI server"""
    settings = settings or default_settings
    logger.info(f"Starting {settings.app_name} on {settings.host}:{settings.port}")

    logger.info("=" * 60)
    logger.info("RUNTIME PARAMETERS:")
    logger.info(f"  Vault: {settings.vault_path}")
    logger.info(f"  Media Root: {settings.media_root_directory}")
    logger.info(f"  Included Files: {settings.included_file_regex}")
    logger.info(f"  Excluded Folders: {settings.excluded_folders}")
    logger.info(f"  Real-time Update: {settings.realtime_update}")
    logger.info("=" * 60)

    logger.info(f"API docs available at: http://{settings.host}:{settings.port}{settings.api_prefix}/docs")

    uvicorn.run(
        create_app(settings) if settings is not default_settings else app,
        host=settings.host,
        port=settings.port,
        reload=False
    )


if __name__ == "__main__":
    run_server()
