"""FastAPI server exposing search, document edits and index maintenance."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from docseek import config
from docseek.diff import build_diff
from docseek.document.serializer import serialize
from docseek.document.tree import tree_to_dict
from docseek.indexer.embedder import Embedder, ProviderUnavailableError
from docseek.search import SearchParams
from docseek.service import (
    DocumentIndexService,
    DocumentNotFoundError,
    IndexNotReadyError,
    RebuildInProgressError,
)
from docseek.sources import LocalRepoSource
from docseek.storage.cache import CacheManager

# Configure logging on import, before anything else logs
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


class SearchRequest(BaseModel):
    query: str
    k: int | None = None


class EnhancedSearchRequest(BaseModel):
    query: str
    k: int | None = None
    min_relevance_score: float | None = None
    boost_important_nodes: bool = True
    boost_section_summaries: bool = True
    boost_by_entity_match: bool = True
    include_chunk_context: bool = True
    filter_by_node_type: list[str] | None = None
    filter_by_section_id: str | None = None
    filter_by_file_name: str | None = None


class EditRequest(BaseModel):
    node_id: str
    text: str


class DiffRequest(BaseModel):
    old_text: str
    new_text: str


class RebuildRequest(BaseModel):
    force: bool = False


def build_default_service() -> DocumentIndexService:
    """Service over the local docs checkout configured by DOCS_PATH."""
    if config.DOCS_PATH is None:
        raise ValueError("DOCS_PATH is not set")
    source = LocalRepoSource(config.DOCS_PATH, base_url=config.DOCS_BASE_URL or None)
    return DocumentIndexService(
        embedder=Embedder(batch_size=config.EMBED_BATCH_SIZE),
        cache=CacheManager(config.CACHE_DIR),
        corpus_id=source.corpus_id,
        source=source,
    )


def create_app(service: DocumentIndexService | None = None) -> FastAPI:
    """Build the app. A given ``service`` that is already started is used as-is."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = app.state.service
        if svc is None:
            svc = build_default_service()
            app.state.service = svc
        if not svc.is_ready:
            logger.info("Building document index...")
            t0 = time.perf_counter()
            svc.start()
            logger.info("Document index ready (%.2fs)", time.perf_counter() - t0)
        yield
        svc.shutdown()

    app = FastAPI(title="docseek", description="Semantic search over Markdown documents", lifespan=lifespan)
    app.state.service = service

    def _service() -> DocumentIndexService:
        svc = app.state.service
        if svc is None:
            raise IndexNotReadyError("Service has not been started")
        return svc

    @app.exception_handler(IndexNotReadyError)
    async def _not_ready(request: Request, exc: IndexNotReadyError):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(RebuildInProgressError)
    async def _busy(request: Request, exc: RebuildInProgressError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ProviderUnavailableError)
    async def _provider_down(request: Request, exc: ProviderUnavailableError):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/status")
    def status():
        svc = app.state.service
        if svc is None:
            return {"status": "error", "details": {"initialized": False}}
        return svc.diagnose()

    @app.post("/search")
    def search(req: SearchRequest):
        logger.info("POST /search query=%r", req.query[:120])
        chunks = _service().similarity_search(req.query, req.k)
        return {"results": [c.to_dict() for c in chunks]}

    @app.post("/search/enhanced")
    def search_enhanced(req: EnhancedSearchRequest):
        logger.info("POST /search/enhanced query=%r", req.query[:120])
        params = SearchParams(**req.model_dump())
        results = _service().enhanced_search(params)
        return {"results": [r.to_dict() for r in results]}

    @app.get("/documents/{name:path}")
    def get_document(name: str):
        tree = _service().get_document(name)
        if tree is None:
            raise HTTPException(status_code=404, detail=f"Document {name!r} not found")
        return {
            "name": name,
            "title": tree.title,
            "markdown": serialize(tree),
            "tree": tree_to_dict(tree),
        }

    @app.post("/documents/{name:path}/edit")
    def edit_document(name: str, req: EditRequest):
        logger.info("POST /documents/%s/edit node_id=%s", name, req.node_id)
        try:
            result = _service().apply_edit(name, req.node_id, req.text)
        except DocumentNotFoundError:
            raise HTTPException(status_code=404, detail=f"Document {name!r} not found")
        return result.to_dict()

    @app.post("/diff")
    def diff(req: DiffRequest):
        return build_diff(req.old_text, req.new_text).to_dict()

    @app.post("/rebuild")
    def rebuild(req: RebuildRequest | None = None):
        force = req.force if req else False
        logger.info("POST /rebuild force=%s", force)
        t0 = time.perf_counter()
        snapshot = _service().rebuild(force=force)
        return {
            "chunks": len(snapshot.chunks),
            "from_cache": snapshot.from_cache,
            "elapsed": round(time.perf_counter() - t0, 3),
        }

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("docseek.api.server:app", host=config.HOST, port=config.PORT, reload=False)
