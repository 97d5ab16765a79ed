"""FastAPI application exposing package search over HTTP."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from doccontext.config import AppConfig
from doccontext.errors import IndexUnavailable, PackageNotFound
from doccontext.index.registry import PackageRegistry, find_package_file
from doccontext.index.search import search_package
from doccontext.index.storage import PackageDatabase

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="doccontext", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    library: str
    topic: str


def _load_config() -> tuple[AppConfig, Path]:
    config = AppConfig()
    return config, config.resolve_packages_dir(Path.cwd())


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/packages")
async def list_packages() -> dict[str, List[dict[str, Any]]]:
    config, packages_dir = _load_config()
    registry = PackageRegistry.from_directory(packages_dir, config.retrieval)
    return {"packages": [info.as_dict() for info in registry.list()]}


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, Any]:
    config, packages_dir = _load_config()
    package_path = find_package_file(packages_dir, payload.library)
    if package_path is None:
        raise HTTPException(status_code=404, detail=str(PackageNotFound(payload.library)))

    try:
        store = PackageDatabase.open(package_path, retrieval=config.retrieval)
    except IndexUnavailable as exc:
        LOGGER.error("Unable to open %s: %s", payload.library, exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    try:
        response = search_package(store, payload.topic, retrieval=config.retrieval)
    except IndexUnavailable as exc:
        LOGGER.error("Search failed for %s: %s", payload.library, exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    finally:
        store.close()
    return response.as_dict()
