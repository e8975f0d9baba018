from fastapi import FastAPI, HTTPException, Depends
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
import datetime
import logging
import time

from config import DatabaseConfig, get_settings, initialize_database, close_database, db_factory
from observability.logging import setup_logging
from observability.prometheus_metrics import CONTENT_TYPE_LATEST, get_metrics_text, record_search
from pipelines.errors import GroundingError
from sources.registry import AGGREGATE_NS, DatasourceRegistry
from .jobs import job_manager

logger = logging.getLogger(__name__)

VERSION = "0.3.0"

app = FastAPI(title="Grounding Search API", version=VERSION)

# Global datasource registry, set on startup
registry: Optional[DatasourceRegistry] = None


@app.on_event("startup")
async def startup_event():
    """Initialize logging, the store and the datasources on startup."""
    global registry

    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        use_json=settings.log_json
    )

    try:
        await initialize_database(DatabaseConfig.from_env())
        registry = DatasourceRegistry(db_factory.get_store(), settings)
        logger.info(f"Datasources ready: {', '.join(registry.namespaces)}")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on shutdown."""
    global registry

    await job_manager.shutdown()
    await close_database()
    registry = None
    logger.info("Database connections closed")


async def get_registry() -> DatasourceRegistry:
    """Dependency to get the datasource registry."""
    if registry is None:
        raise HTTPException(status_code=500, detail="Datasources not initialized")
    return registry


def _datasource_or_404(reg: DatasourceRegistry, namespace: Optional[str]):
    datasource = reg.get(namespace)
    if datasource is None:
        raise HTTPException(status_code=404, detail=f"Unknown namespace: {namespace}")
    return datasource


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    q: str
    namespace: Optional[str] = None
    from_: int = Field(default=0, ge=0, alias="from")
    size: int = Field(default=10, ge=1)
    organism_counts: Optional[Dict[str, int]] = Field(default=None, alias="organismCounts")


class NamespaceSearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    q: str
    from_: int = Field(default=0, ge=0, alias="from")
    size: int = Field(default=10, ge=1)
    organism_counts: Optional[Dict[str, int]] = Field(default=None, alias="organismCounts")


class GetRequest(BaseModel):
    namespace: str
    id: str


class UpdateRequest(BaseModel):
    force: bool = False


@app.get("/")
async def root():
    return RedirectResponse(url="/docs")


@app.get("/health")
def health():
    return {"status": "ok", "time": datetime.datetime.now(datetime.timezone.utc).isoformat()}


@app.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check with store statistics."""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.datetime.now().isoformat(),
        "version": VERSION,
        "components": {}
    }

    try:
        if registry:
            stats = await registry.store.get_stats()
            health_status["components"]["database"] = {"status": "healthy", **stats}
        else:
            health_status["components"]["database"] = {"status": "unavailable"}
            health_status["status"] = "degraded"
    except GroundingError as e:
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "degraded"

    return health_status


@app.get("/metrics")
async def metrics():
    """Prometheus metrics."""
    return Response(content=get_metrics_text(), media_type=CONTENT_TYPE_LATEST)


async def _search(datasource, namespace: str, q: str, from_: int, size: int,
                  organism_counts: Optional[Dict[str, int]] = None) -> List[Dict[str, Any]]:
    size = min(size, get_settings().max_search_size)
    start_time = time.time()
    try:
        results = await datasource.search(q, from_, size, organism_counts)
    except GroundingError as e:
        record_search(namespace, time.time() - start_time, status='error')
        logger.error(f"Search error in {namespace}: {e}")
        raise HTTPException(status_code=500, detail="Search failed")
    record_search(namespace, time.time() - start_time)
    return results


@app.post("/search")
async def search(req: SearchRequest, reg: DatasourceRegistry = Depends(get_registry)):
    """Search one namespace, or every namespace when none is given."""
    datasource = _datasource_or_404(reg, req.namespace)
    return await _search(datasource, req.namespace or AGGREGATE_NS, req.q, req.from_, req.size,
                         req.organism_counts)


@app.post("/uniprot")
async def search_uniprot(req: NamespaceSearchRequest, reg: DatasourceRegistry = Depends(get_registry)):
    """UniProt search, e.g. ``{"q": "p53"}``."""
    datasource = _datasource_or_404(reg, "uniprot")
    return await _search(datasource, "uniprot", req.q, req.from_, req.size, req.organism_counts)


@app.post("/get")
async def get_entity(req: GetRequest, reg: DatasourceRegistry = Depends(get_registry)):
    """Look up one record by namespace and id."""
    try:
        entity = await reg.aggregate.get(req.namespace, req.id)
    except GroundingError as e:
        logger.error(f"Get error for {req.namespace}:{req.id}: {e}")
        raise HTTPException(status_code=500, detail="Get failed")

    if entity is None:
        raise HTTPException(status_code=404, detail=f"No {req.namespace} entity with id {req.id}")
    return entity


@app.post("/update/{namespace}", status_code=202)
async def update_namespace(namespace: str, req: Optional[UpdateRequest] = None,
                           reg: DatasourceRegistry = Depends(get_registry)):
    """Start re-ingesting a namespace in the background."""
    datasource = reg.datasources.get(namespace)
    if datasource is None:
        raise HTTPException(status_code=404, detail=f"Unknown namespace: {namespace}")

    force = req.force if req else False
    job = job_manager.submit(
        "update",
        namespace,
        lambda: datasource.update(force),
        parameters={"namespace": namespace, "force": force}
    )
    return job.to_dict()


@app.post("/clear/{namespace}")
async def clear_namespace(namespace: str, reg: DatasourceRegistry = Depends(get_registry)):
    """Delete every record of a namespace."""
    datasource = reg.datasources.get(namespace)
    if datasource is None:
        raise HTTPException(status_code=404, detail=f"Unknown namespace: {namespace}")

    try:
        deleted = await datasource.clear()
    except GroundingError as e:
        logger.error(f"Clear error for {namespace}: {e}")
        raise HTTPException(status_code=500, detail="Clear failed")
    return {"namespace": namespace, "deleted": deleted}


@app.get("/jobs")
async def list_jobs():
    return {"jobs": [job.to_dict() for job in job_manager.list_jobs()]}


@app.get("/jobs/{job_id}")
async def get_job(job_id: str):
    job = job_manager.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return job.to_dict()
