"""
Flow Builder Backend - FastAPI Application

Exposes one FlowStore to UI collaborators:
- REST API for flow operations (nodes, edges, start node, undo/redo, import/export)
- WebSocket endpoint for real-time change notifications
- CORS configuration for local frontend development

The store is created per application by create_app() and reached through
request.app.state, never through a module-level instance.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flow_core import (
    ConnectionCheckRequest,
    CreateEdgeRequest,
    FlowStore,
    ImportRequest,
    SetStartNodeRequest,
    UpdateEdgeRequest,
    UpdateEdgeTargetRequest,
    UpdateNodeRequest,
    validation_summary,
    validate_all,
)
from flow_core.config import CORS_ORIGINS

from .websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_store(request: Request) -> FlowStore:
    return request.app.state.store


def get_ws_manager(request: Request) -> WebSocketManager:
    return request.app.state.ws_manager


# --- Async change notification ---
# Bridge between sync store subscribers and async WebSocket broadcasts

async def change_broadcaster(store: FlowStore, ws_manager: WebSocketManager, changed: asyncio.Event):
    """Background task that broadcasts changes to WebSocket clients."""
    while True:
        await changed.wait()
        changed.clear()
        await ws_manager.notify_flow_updated(store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup/shutdown tasks."""
    store: FlowStore = app.state.store
    changed = asyncio.Event()
    unsubscribe = store.subscribe(changed.set)

    broadcaster_task = asyncio.create_task(
        change_broadcaster(store, app.state.ws_manager, changed)
    )

    yield

    unsubscribe()
    broadcaster_task.cancel()
    try:
        await broadcaster_task
    except asyncio.CancelledError:
        pass


# --- Health Check ---

@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    return {"status": "ok", "connections": get_ws_manager(request).connection_count}


# --- Flow State ---

@router.get("/flow")
async def get_flow(store: FlowStore = Depends(get_store)):
    """Get the current flow state."""
    return store.get_state()


@router.post("/reset")
async def reset_flow(store: FlowStore = Depends(get_store)):
    """Clear the flow, its history and UI flags."""
    store.reset()
    return {"success": True}


# --- Undo/Redo ---

@router.post("/undo")
async def undo(store: FlowStore = Depends(get_store)):
    """Undo the last action."""
    if store.undo() is not None:
        return {"success": True, "flow": store.get_state()}
    return {"success": False, "message": "Nothing to undo"}


@router.post("/redo")
async def redo(store: FlowStore = Depends(get_store)):
    """Redo the last undone action."""
    if store.redo() is not None:
        return {"success": True, "flow": store.get_state()}
    return {"success": False, "message": "Nothing to redo"}


# --- Node Operations ---

@router.post("/nodes")
async def create_node(store: FlowStore = Depends(get_store)):
    """Create a new node with default data."""
    node = store.add_node()
    return {"success": True, "node": node.model_dump()}


@router.get("/nodes/{node_id}")
async def get_node(node_id: str, store: FlowStore = Depends(get_store)):
    """Get a specific node."""
    node = store.get_node(node_id)
    if node:
        return {"success": True, "node": node.model_dump()}
    raise HTTPException(status_code=404, detail="Node not found")


@router.patch("/nodes/{node_id}")
async def update_node(node_id: str, request: UpdateNodeRequest, store: FlowStore = Depends(get_store)):
    """Update a node's label, description or prompt."""
    node = store.update_node_data(
        node_id,
        label=request.label,
        description=request.description,
        prompt=request.prompt
    )
    if node:
        return {"success": True, "node": node.model_dump()}
    raise HTTPException(status_code=404, detail="Node not found")


@router.delete("/nodes/{node_id}")
async def delete_node(node_id: str, store: FlowStore = Depends(get_store)):
    """Delete a node and its connected edges."""
    removed_edges = store.delete_node(node_id)
    if removed_edges is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return {"success": True, "removed_edges": removed_edges}


@router.get("/nodes/{node_id}/issues")
async def get_node_issues(node_id: str, store: FlowStore = Depends(get_store)):
    """Get the errors and warnings tagged with a node."""
    return {"success": True, "issues": [i.to_dict() for i in store.get_node_errors(node_id)]}


@router.post("/start-node")
async def set_start_node(request: SetStartNodeRequest, store: FlowStore = Depends(get_store)):
    """Set or clear the start node."""
    if store.set_start_node(request.node_id):
        return {"success": True, "start_node_id": store.start_node_id}
    raise HTTPException(status_code=404, detail="Node not found")


# --- Edge Operations ---

@router.post("/connections/check")
async def check_connection(request: ConnectionCheckRequest, store: FlowStore = Depends(get_store)):
    """Check whether a connection between two nodes would be accepted."""
    return {"valid": store.is_valid_connection(request.source, request.target)}


@router.post("/edges")
async def create_edge(request: CreateEdgeRequest, store: FlowStore = Depends(get_store)):
    """Create a new edge, rejecting self and duplicate connections."""
    if not store.is_valid_connection(request.source, request.target):
        raise HTTPException(status_code=400, detail="Invalid connection")

    edge = store.add_edge(
        request.source,
        request.target,
        source_handle=request.source_handle,
        target_handle=request.target_handle
    )
    return {"success": True, "edge": edge.model_dump()}


@router.get("/edges/{edge_id}")
async def get_edge(edge_id: str, store: FlowStore = Depends(get_store)):
    """Get a specific edge."""
    edge = store.get_edge(edge_id)
    if edge:
        return {"success": True, "edge": edge.model_dump()}
    raise HTTPException(status_code=404, detail="Edge not found")


@router.patch("/edges/{edge_id}")
async def update_edge(edge_id: str, request: UpdateEdgeRequest, store: FlowStore = Depends(get_store)):
    """Update an edge's condition or parameters."""
    edge = store.update_edge_data(
        edge_id,
        condition=request.condition,
        parameters=request.parameters
    )
    if edge:
        return {"success": True, "edge": edge.model_dump()}
    raise HTTPException(status_code=404, detail="Edge not found")


@router.patch("/edges/{edge_id}/target")
async def update_edge_target(edge_id: str, request: UpdateEdgeTargetRequest,
                             store: FlowStore = Depends(get_store)):
    """Point an edge at a different node."""
    edge = store.update_edge_target(edge_id, request.target)
    if edge:
        return {"success": True, "edge": edge.model_dump()}
    raise HTTPException(status_code=404, detail="Edge or target node not found")


@router.delete("/edges/{edge_id}")
async def delete_edge(edge_id: str, store: FlowStore = Depends(get_store)):
    """Delete an edge."""
    if store.delete_edge(edge_id):
        return {"success": True}
    raise HTTPException(status_code=404, detail="Edge not found")


@router.get("/edges/{edge_id}/issues")
async def get_edge_issues(edge_id: str, store: FlowStore = Depends(get_store)):
    """Get the errors and warnings tagged with an edge."""
    return {"success": True, "issues": [i.to_dict() for i in store.get_edge_errors(edge_id)]}


# --- Validation ---

@router.get("/validate")
async def validate_current_flow(store: FlowStore = Depends(get_store)):
    """
    Validate the current flow.

    Returns the errors and warnings of a fresh validation pass and a summary.
    """
    result = validate_all(store.to_schema())
    return {
        "success": True,
        **result.to_dict(),
        "summary": validation_summary(result)
    }


# --- Import/Export ---

@router.get("/export")
async def export_flow(store: FlowStore = Depends(get_store)):
    """Export the flow as a persisted document."""
    return {"success": True, "json": store.export_json()}


@router.post("/import")
async def import_flow(request: ImportRequest, store: FlowStore = Depends(get_store)):
    """Replace the flow with an imported document."""
    result = store.import_json(request.json_text)
    if result.success:
        return {"success": True, "flow": store.get_state()}
    return JSONResponse(status_code=422, content=result.to_dict())


# --- WebSocket ---

async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Clients connect here to receive flow_updated events.
    """
    ws_manager: WebSocketManager = websocket.app.state.ws_manager
    await ws_manager.connect(websocket)

    try:
        while True:
            await ws_manager.handle_message(websocket, await websocket.receive_text())
    except WebSocketDisconnect:
        logger.debug("Editor closed its WebSocket")
    finally:
        # Unregister on every exit path
        await ws_manager.disconnect(websocket)


# --- App factory ---

def create_app(store: Optional[FlowStore] = None) -> FastAPI:
    """Build the API around a store instance (a fresh one if none is given)."""
    app = FastAPI(
        title="Flow Builder API",
        description="Backend API for the prompt flow builder",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.store = store if store is not None else FlowStore()
    app.state.ws_manager = WebSocketManager()

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.add_api_websocket_route("/ws", websocket_endpoint)
    return app


def run(host: str, port: int):
    """Run the backend with uvicorn."""
    import uvicorn
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    from flow_core.config import HOST, PORT, configure_logging
    configure_logging()
    run(HOST, PORT)
