import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from productcache.clients.backing_store import BackingStore, InMemoryBackingStore
from productcache.clients.http_store import HttpBackingStore
from productcache.config import Settings
from productcache.models.enums import BackingStoreKind
from productcache.orchestrator import Orchestrator
from productcache.storage.snapshot import SnapshotStore

logger = logging.getLogger(__name__)

_orchestrator: Orchestrator | None = None
_snapshot_store: SnapshotStore | None = None
_fill_stop: asyncio.Event | None = None


def get_orchestrator() -> Orchestrator:
    """Get the current Orchestrator instance. Raises if not initialized."""
    if _orchestrator is None:
        raise RuntimeError("Cache not initialized. Server lifespan has not started.")
    return _orchestrator


def get_snapshot_store() -> SnapshotStore | None:
    """Return the SnapshotStore while the server is running, else ``None``."""
    return _snapshot_store


def get_fill_stop() -> asyncio.Event:
    """Shared stop signal for the bulk fill tool, created on first use."""
    global _fill_stop  # noqa: PLW0603
    if _fill_stop is None:
        _fill_stop = asyncio.Event()
    return _fill_stop


def _reset_orchestrator() -> None:
    """Clear the module-level Orchestrator reference. Used in tests."""
    global _orchestrator  # noqa: PLW0603
    _orchestrator = None


def _reset_snapshot_store() -> None:
    """Clear the module-level SnapshotStore reference. Used in tests."""
    global _snapshot_store, _fill_stop  # noqa: PLW0603
    _snapshot_store = None
    _fill_stop = None


def build_backing_store(settings: Settings) -> BackingStore:
    """Construct the backing store selected by ``settings.backing_store``."""
    if settings.backing_store == BackingStoreKind.HTTP:
        return HttpBackingStore(settings.backing_store_url, settings.backing_store_token)
    return InMemoryBackingStore(delay_seconds=settings.fetch_delay_seconds)


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    """Build the cache, restore the last snapshot, and save one on shutdown."""
    global _orchestrator, _snapshot_store  # noqa: PLW0603
    from productcache.config import get_settings

    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    _orchestrator = Orchestrator(
        build_backing_store(settings),
        settings.cache_options(),
        event_log_size=settings.event_log_size,
    )
    _snapshot_store = SnapshotStore(settings.snapshot_path)
    await _snapshot_store.initialize()

    snapshot = await _snapshot_store.load()
    if snapshot is not None:
        _orchestrator.restore(snapshot)
    logger.info(
        "Cache ready: %d bytes, %s eviction, %s backing store",
        settings.capacity_bytes, settings.eviction_policy, settings.backing_store,
    )

    try:
        await _orchestrator.refresh_available()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Could not load available products: %s", exc)

    try:
        yield {"orchestrator": _orchestrator}
    finally:
        await _snapshot_store.save(_orchestrator.snapshot())
        await _snapshot_store.close()
        _snapshot_store = None
        _orchestrator = None
        logger.info("Cache snapshot saved")


mcp = FastMCP("product-cache", lifespan=app_lifespan)


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request | None) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def setup_logging(log_level: str, data_dir: Path) -> None:
    """Configure logging with file rotation and console output.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        data_dir: Base data directory; logs go to data_dir/logs/server.log.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler: exact type check avoids matching subclasses (FileHandler, etc.)
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    log_dir = data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "server.log"

    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def initialize() -> FastMCP:
    """Set up directories, logging, auth and tools. Returns the MCP server."""
    from productcache.config import get_settings

    settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / "logs").mkdir(exist_ok=True)

    setup_logging(settings.log_level, settings.data_dir)

    if settings.mcp_auth_token:
        from productcache.auth import BearerTokenVerifier

        mcp.auth = BearerTokenVerifier(
            settings.mcp_auth_token, read_only_token=settings.mcp_read_only_token
        )
    elif settings.mcp_read_only_token:
        logger.warning("MCP_READ_ONLY_TOKEN is ignored without MCP_AUTH_TOKEN")

    from productcache.tools.cache import register_cache_tools

    register_cache_tools(mcp)

    logger.info("Product cache server initialized")
    return mcp
