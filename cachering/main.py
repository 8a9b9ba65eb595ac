"""
Cache Ring - Main FastAPI Application

Exposes ring membership, key lookup and routed cache operations.
"""
from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel
from contextlib import asynccontextmanager
from typing import Optional
import logging

from cachering.cluster.cache_router import CacheRouter
from cachering.cluster.errors import EmptyRingError, InvalidArgumentError, NodeNotFoundError
from cachering.config import RingSettings

logger = logging.getLogger(__name__)

# Global router instance
cache_router: CacheRouter = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager for FastAPI application.

    Handles startup (replay membership, build the ring) and shutdown.
    """
    global cache_router

    settings = RingSettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    cache_router = CacheRouter(
        settings.node_ids,
        settings.data_dir,
        replicas=settings.replicas,
        hash_function=settings.hash_name,
    )
    await cache_router.initialize()

    logger.info(f"✅ CacheRouter ready with {len(cache_router.members())} nodes")

    yield

    await cache_router.close()
    logger.info("✅ CacheRouter closed")


app = FastAPI(
    title="Cache Ring",
    description="Consistent-hash routing of cache keys across a dynamic set of nodes",
    version="0.1.0",
    lifespan=lifespan
)


class NodeRequest(BaseModel):
    """Request model for adding a node"""
    replicas: Optional[int] = None


class ValueRequest(BaseModel):
    """Request model for PUT /cache/{key}"""
    value: str


class ValueResponse(BaseModel):
    """Response model for GET /cache/{key}"""
    value: str
    node_id: str


def _owner_or_503(key: str) -> str:
    try:
        return cache_router.owner(key)
    except EmptyRingError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and container orchestration.
    """
    return {
        "status": "healthy",
        "nodes": len(cache_router.members()),
        "keys_cached": await cache_router.size()
    }


@app.get("/nodes")
async def list_nodes():
    """List ring members"""
    return {"nodes": cache_router.members()}


@app.put("/nodes/{node_id}")
async def add_node(node_id: str, request: Optional[NodeRequest] = None):
    """
    Add a node to the ring, or change its replica count.

    Raises:
        400: If the node id or replica count is invalid
    """
    replicas = request.replicas if request else None
    if replicas is None:
        replicas = cache_router.hash_ring.replicas
    try:
        changed = await cache_router.add_node(node_id, replicas)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {
        "message": "added" if changed else "unchanged",
        "node_id": node_id,
        "replicas": replicas
    }


@app.delete("/nodes/{node_id}")
async def remove_node(node_id: str):
    """
    Remove a node from the ring.

    Raises:
        404: If the node is not on the ring
    """
    try:
        await cache_router.remove_node(node_id)
    except NodeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return {
        "message": "removed",
        "node_id": node_id
    }


@app.get("/lookup/{key}")
async def lookup(key: str):
    """
    Resolve which node owns a key.

    Raises:
        503: If the ring has no nodes
    """
    return {
        "key": key,
        "node_id": _owner_or_503(key)
    }


@app.get("/cache/{key}", response_model=ValueResponse)
async def get_value(key: str):
    """
    Retrieve a cached value.

    Raises:
        404: If key is not cached
        503: If the ring has no nodes
    """
    try:
        node_id, value = await cache_router.get_with_owner(key)
    except EmptyRingError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if value is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Key '{key}' not found"
        )

    logger.info(f"GET key='{key}' node={node_id}")
    return ValueResponse(value=value, node_id=node_id)


@app.put("/cache/{key}")
async def put_value(key: str, request: ValueRequest):
    """
    Cache a value on the node owning the key.
    """
    try:
        node_id = await cache_router.put(key, request.value)
    except EmptyRingError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    logger.info(f"PUT key='{key}', value_length={len(request.value)} node={node_id}")

    return {
        "message": "success",
        "key": key,
        "node_id": node_id
    }


@app.delete("/cache/{key}")
async def delete_value(key: str):
    """
    Delete a cached value.

    Raises:
        404: If key is not cached
    """
    try:
        deleted = await cache_router.delete(key)
    except EmptyRingError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Key '{key}' not found"
        )

    logger.info(f"DELETE key='{key}'")

    return {
        "message": "deleted",
        "key": key
    }


@app.get("/stats")
async def get_stats():
    """
    Get key and virtual node distribution across nodes.
    """
    return await cache_router.get_stats()


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    num_nodes = len(cache_router.members()) if cache_router else 0
    return {
        "service": "Cache Ring",
        "version": "0.1.0",
        "ring": {
            "num_nodes": num_nodes
        },
        "endpoints": {
            "health": "/health",
            "stats": "/stats",
            "nodes": "GET /nodes, PUT /nodes/{node_id}, DELETE /nodes/{node_id}",
            "lookup": "GET /lookup/{key}",
            "cache": "GET/PUT/DELETE /cache/{key}"
        }
    }
