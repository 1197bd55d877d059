import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .config import Settings, load_settings, load_versions
from .errors import ServiceError
from .jobs import JobRegistry, record_to_info
from .models import (
    JobInfo,
    ReplyRequest,
    ServerCreateRequest,
    ServerListResponse,
    VersionListResponse,
)
from .services.provisioning_service import ProvisioningService
from .services.upload_broker import AssetFetcher, UploadBrokerClient
from .store import ServerStore

MAX_VERSION_SUGGESTIONS = 25


def create_app(
    settings: Optional[Settings] = None,
    fetcher: Optional[AssetFetcher] = None,
) -> FastAPI:
    settings = settings or load_settings()
    store = ServerStore(settings.database_path)
    fetcher = fetcher or AssetFetcher(UploadBrokerClient(settings))
    service = ProvisioningService(settings, store, fetcher)
    jobs = JobRegistry(service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await asyncio.to_thread(store.init_db)
        yield
        await jobs.shutdown()
        await fetcher.broker.aclose()

    app = FastAPI(title="Minecraft Server Provisioner", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.jobs = jobs

    @app.exception_handler(ServiceError)
    def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/servers", response_model=ServerListResponse)
    async def list_servers() -> ServerListResponse:
        records = await asyncio.to_thread(store.list_servers)
        return ServerListResponse(servers=[record_to_info(record) for record in records])

    @app.post("/servers", response_model=JobInfo, status_code=202)
    async def create_server(request: ServerCreateRequest) -> JobInfo:
        return jobs.submit(request).info()

    @app.get("/jobs/{job_id}", response_model=JobInfo)
    async def get_job(job_id: str) -> JobInfo:
        return jobs.get(job_id).info()

    @app.post("/jobs/{job_id}/reply", response_model=JobInfo)
    async def reply_to_job(job_id: str, request: ReplyRequest) -> JobInfo:
        job = jobs.get(job_id)
        job.submit_reply(request.content)
        return job.info()

    @app.delete("/jobs/{job_id}", response_model=JobInfo)
    async def cancel_job(job_id: str) -> JobInfo:
        return jobs.cancel(job_id).info()

    @app.get("/versions", response_model=VersionListResponse)
    async def list_versions(prefix: str = Query("", max_length=32)) -> VersionListResponse:
        versions = await asyncio.to_thread(load_versions, settings.versions_path)
        matches = [version for version in versions if version.startswith(prefix)]
        return VersionListResponse(versions=matches[:MAX_VERSION_SUGGESTIONS])

    return app
