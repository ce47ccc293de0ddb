from fastapi import FastAPI, APIRouter, Body
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, Dict, Optional
import uvicorn
import asyncio
import logging
import random
import time
import uuid

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Demo API",
    description="Randomized endpoints exercised by the HTTP traffic simulator",
    version="1.0.0"
)

router = APIRouter(prefix="/api/demo")

rng = random.Random()


class DemoResponse(BaseModel):
    id: str
    message: str
    timestamp: int


def create_response(message: str, status_code: int = 200) -> JSONResponse:
    body = DemoResponse(
        id=str(uuid.uuid4()),
        message=message,
        timestamp=int(time.time() * 1000)
    )
    return JSONResponse(status_code=status_code, content=dict(body))


@router.get("/fast")
async def get_fast_response():
    """Immediate success."""
    logger.debug("Processing fast GET request")
    return create_response("Fast response")


@router.get("/slow")
async def get_slow_response():
    """Success after a 0.5-2s delay."""
    logger.debug("Processing slow GET request")
    await asyncio.sleep((500 + rng.randrange(1500)) / 1000)
    return create_response("Slow response")


@router.get("/flaky")
async def get_flaky_response():
    """Occasionally slow; 70% 200, 20% 400, 10% 500."""
    logger.debug("Processing flaky GET request")

    if rng.random() < 0.2:
        await asyncio.sleep((1000 + rng.randrange(2000)) / 1000)

    status_roll = rng.random()
    if status_roll < 0.7:
        return create_response("Successful response")
    elif status_roll < 0.9:
        logger.warning("Flaky Request Error!")
        return create_response("Bad request error", 400)
    else:
        logger.error("Flaky Request Error!")
        return create_response("Server error", 500)


@router.post("/data")
async def post_data(payload: Optional[Dict[str, Any]] = Body(default=None)):
    logger.debug(f"Processing POST request with payload size: {len(payload) if payload else 0}")

    if rng.random() < 0.9:
        return create_response("Data created successfully", 201)
    logger.error("Post Data Request Error!")
    return create_response("Invalid data format", 400)


@router.put("/data/{resource_id}")
async def update_data(resource_id: str, payload: Optional[Dict[str, Any]] = Body(default=None)):
    logger.debug(f"Processing PUT request for id: {resource_id}")

    status_roll = rng.random()
    if status_roll < 0.8:
        return create_response("Data updated successfully")
    elif status_roll < 0.95:
        return create_response("Resource not found", 404)
    else:
        logger.error("Update Data Request Error!")
        return create_response("Server error during update", 500)


@router.delete("/data/{resource_id}")
async def delete_data(resource_id: str):
    logger.debug(f"Processing DELETE request for id: {resource_id}")

    if rng.random() < 0.85:
        return create_response("Data deleted successfully")
    logger.warning("Delete Request Error!")
    return create_response("Resource not found", 404)


app.include_router(router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": int(time.time() * 1000),
        "service": "demo-api"
    }


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Demo API for the HTTP traffic simulator')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8080, help='Port to bind to')
    parser.add_argument('--reload', action='store_true', help='Enable auto-reload for development')

    args = parser.parse_args()

    uvicorn.run(
        "server:app" if args.reload else app,
        host=args.host,
        port=args.port,
        reload=args.reload
    )
