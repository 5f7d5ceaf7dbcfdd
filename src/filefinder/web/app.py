"""FastAPI application exposing FileFinder over HTTP."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from filefinder import __version__
from filefinder.config import AppConfig
from filefinder.index.storage import IndexOpenError, OpenMode, SQLiteIndexStore
from filefinder.search.sink import CollectingSink
from filefinder.search.task import SearchTask, SessionState

LOGGER = logging.getLogger(__name__)

MAX_TOP_K = 1000

app = FastAPI(title="FileFinder Web", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    target: str
    query: str
    index_dir: Path | None = None
    top_k: int | None = None
    case_sensitive: bool = True


class DeleteDocumentRequest(BaseModel):
    path: str


def _resolve_index_dir(index_dir: Path | None) -> Path:
    return AppConfig(index_dir=index_dir).resolve_index_dir(Path.cwd())


def _open_existing(index_dir: Path | None) -> SQLiteIndexStore | None:
    try:
        return SQLiteIndexStore.open(_resolve_index_dir(index_dir), mode=OpenMode.APPEND)
    except IndexOpenError:
        return None


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


def _run_search(target: Path, query: str, config: AppConfig) -> tuple[SessionState, CollectingSink]:
    sink = CollectingSink()
    task = SearchTask(target, query, sink, config=config)
    state = task.run()
    return state, sink


@app.post("/search")
async def search_files(payload: SearchPayload) -> dict[str, Any]:
    query = payload.query
    if not query.strip():
        raise HTTPException(status_code=400, detail="Empty query")

    target = Path(payload.target).expanduser()
    if not target.is_dir():
        raise HTTPException(status_code=400, detail=f"Not a directory: {payload.target}")

    defaults = AppConfig()
    top_k = payload.top_k if payload.top_k is not None else defaults.top_k
    config = AppConfig(
        index_dir=_resolve_index_dir(payload.index_dir),
        top_k=max(1, min(top_k, MAX_TOP_K)),
        case_sensitive=payload.case_sensitive,
    )

    state, sink = await asyncio.to_thread(_run_search, target.resolve(), query, config)
    if state is SessionState.FAILED:
        raise HTTPException(status_code=500, detail=sink.failure or "Search failed")
    return {"matches": sink.matches, "state": state.value}


@app.get("/documents")
async def list_documents(index_dir: Path | None = None) -> dict[str, Any]:
    """List all indexed documents."""
    store = _open_existing(index_dir)
    if store is None:
        return {"documents": [], "stats": {"document_count": 0, "last_indexed": None}}
    return {"documents": store.list_documents(), "stats": store.get_stats()}


@app.post("/documents/delete")
async def delete_document(payload: DeleteDocumentRequest, index_dir: Path | None = None) -> dict[str, str]:
    """Delete a single document from the index by path."""
    store = _open_existing(index_dir)
    if store is None:
        raise HTTPException(status_code=404, detail="Index not found")
    if not store.delete_document_by_path(payload.path):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"status": "ok"}


@app.delete("/documents/cleanup")
async def cleanup_missing_files(index_dir: Path | None = None) -> dict[str, Any]:
    """Remove documents whose files no longer exist on disk."""
    store = _open_existing(index_dir)
    if store is None:
        raise HTTPException(status_code=404, detail="Index not found")
    removed_count = store.remove_missing_files()
    return {"status": "ok", "removed_count": removed_count}
