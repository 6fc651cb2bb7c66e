"""MCP tools for reading, writing and inspecting the product cache."""

import logging

from fastmcp import FastMCP

from productcache.auth import WRITE_SCOPE, require_scope
from productcache.models.enums import CacheOutcome
from productcache.models.product import NewProduct, ProductPatch
from productcache.server import get_fill_stop, get_orchestrator, get_snapshot_store
from productcache.tools.error_messages import safe_tool_wrapper

logger = logging.getLogger(__name__)


def _format_price(price: float) -> str:
    return f"${price:,.2f}"


def register_cache_tools(mcp: FastMCP) -> None:  # noqa: C901
    """Register cache tools on the MCP server."""

    # ── Reads ──────────────────────────────────────────────────────────

    @mcp.tool
    async def fetch_product(product_id: str) -> str:
        """Look up a product, serving it from the cache when possible.
        A cache miss loads it from the backing store and caches it,
        which may evict other products to make room.

        Args:
            product_id: Product identifier, e.g. "p3".

        Returns:
            The product, whether it was a hit or a miss, and any evictions.
        """

        async def _fetch() -> str:
            result = await get_orchestrator().get(product_id)
            if not result.found or result.value is None:
                return f"Product '{product_id}' was not found."
            item = result.value
            lines = [
                f"{item.name} ({item.id}) {_format_price(item.price)}",
                f"Category: {item.category} | Stock: {item.stock}",
                f"Cache {result.outcome.value}"
                + (" (shared an in-flight fetch)" if result.coalesced else ""),
            ]
            if result.outcome == CacheOutcome.MISS and not result.cached:
                lines.append("Too large to cache; served from the backing store.")
            if result.evicted:
                lines.append(f"Evicted: {', '.join(result.evicted)}")
            return "\n".join(lines)

        return await safe_tool_wrapper(_fetch, context={"product": product_id})

    @mcp.tool
    async def list_products(refresh: bool = False) -> str:
        """List the products available in the backing store, marking
        which ones are currently cached.

        Args:
            refresh: Reload the listing from the backing store first.

        Returns:
            One line per product.
        """

        async def _list() -> str:
            orchestrator = get_orchestrator()
            items = (
                await orchestrator.refresh_available()
                if refresh
                else orchestrator.available_items()
            )
            if not items:
                return "No products available."
            cached = {item.id for item in orchestrator.cached_items()}
            lines = [f"Products ({len(items)}):"]
            for item in items:
                marker = " [cached]" if item.id in cached else ""
                lines.append(f"- {item.id}: {item.name}{marker}")
            return "\n".join(lines)

        return await safe_tool_wrapper(_list)

    # ── Writes ─────────────────────────────────────────────────────────

    @mcp.tool
    async def add_product(
        name: str,
        price: float,
        category: str = "General",
        stock: int = 0,
        size_bytes: int | None = None,
    ) -> str:
        """Create a product in the backing store and cache it.

        Args:
            name: Product name, must be unique.
            price: Unit price.
            category: Product category.
            stock: Units in stock.
            size_bytes: Size the product occupies in the cache; when
                omitted the in-memory store picks one.

        Returns:
            The created product's id.
        """

        async def _add() -> str:
            require_scope(WRITE_SCOPE)
            orchestrator = get_orchestrator()
            created = await orchestrator.put(
                NewProduct(
                    name=name,
                    price=price,
                    category=category,
                    stock=stock,
                    size_bytes=size_bytes,
                )
            )
            status = "cached" if created.id in orchestrator.engine else "not cached"
            return f"Created {created.name} as {created.id} ({status})."

        return await safe_tool_wrapper(_add, context={"product": name})

    @mcp.tool
    async def update_product(
        product_id: str,
        name: str | None = None,
        price: float | None = None,
        category: str | None = None,
        stock: int | None = None,
    ) -> str:
        """Update a product in the backing store and the cache.
        Only the fields you pass are changed.

        Args:
            product_id: Product identifier.
            name: New name.
            price: New price.
            category: New category.
            stock: New stock level.

        Returns:
            The updated product, or a warning if only the cache was updated.
        """

        async def _update() -> str:
            require_scope(WRITE_SCOPE)
            patch = ProductPatch(name=name, price=price, category=category, stock=stock)
            if not patch.changes():
                return "Nothing to update. Pass at least one field."
            result = await get_orchestrator().update(product_id, patch)
            if not result.found or result.value is None:
                return f"Product '{product_id}' was not found."
            item = result.value
            summary = f"Updated {item.name} ({item.id}) {_format_price(item.price)}"
            if result.degraded:
                return (
                    f"{summary} in the cache only. "
                    f"The backing store could not be updated: {result.error}"
                )
            return summary + (" and refreshed the cache." if result.cached else ".")

        return await safe_tool_wrapper(_update, context={"product": product_id})

    @mcp.tool
    async def delete_product(product_id: str) -> str:
        """Remove a product from the cache. The backing store is not changed.

        Args:
            product_id: Product identifier.

        Returns:
            Whether the product was cached.
        """

        async def _delete() -> str:
            require_scope(WRITE_SCOPE)
            if get_orchestrator().delete(product_id):
                return f"Removed '{product_id}' from the cache."
            return f"'{product_id}' was not cached."

        return await safe_tool_wrapper(_delete, context={"product": product_id})

    # ── Observability ──────────────────────────────────────────────────

    @mcp.tool
    async def cache_metrics() -> str:
        """Show hit/miss counts, hit rate and evictions.

        Returns:
            Cache metrics summary.
        """
        m = get_orchestrator().get_metrics()
        return (
            f"Requests: {m.total_requests}\n"
            f"Hits: {m.hits} ({m.hit_rate:.1%})\n"
            f"Misses: {m.misses} ({m.miss_rate:.1%})\n"
            f"Evictions: {m.evictions}"
        )

    @mcp.tool
    async def cache_events(limit: int = 10) -> str:
        """Show recent cache events, newest first.

        Args:
            limit: Maximum number of events to show.

        Returns:
            One line per event.
        """
        events = get_orchestrator().get_events(max(limit, 0))
        if not events:
            return "No cache events yet."
        return "\n".join(
            f"{event.kind.value.upper():<8} {event.key} ({event.label})" for event in events
        )

    @mcp.tool
    async def cache_status() -> str:
        """Show memory usage, health and the cached products.

        Returns:
            Usage summary followed by the cached products.
        """
        orchestrator = get_orchestrator()
        status = orchestrator.memory()
        lines = [
            f"Memory: {status.used_bytes}/{status.capacity_bytes} bytes "
            f"({status.usage:.1%}, {status.health.value})",
            f"Cached products: {status.count}",
        ]
        for entry in orchestrator.engine.entries():
            lines.append(
                f"- {entry.key}: {entry.value.name} "
                f"({entry.size_bytes} bytes, {entry.access_count} reads)"
            )
        return "\n".join(lines)

    @mcp.tool
    async def clear_cache() -> str:
        """Empty the cache, clear the event log and reset metrics.

        Returns:
            Confirmation.
        """

        async def _clear() -> str:
            require_scope(WRITE_SCOPE)
            await get_orchestrator().clear()
            return "Cache cleared."

        return await safe_tool_wrapper(_clear)

    @mcp.tool
    async def reset_metrics() -> str:
        """Zero the hit/miss/eviction counters without touching cached data.

        Returns:
            Confirmation.
        """

        async def _reset() -> str:
            require_scope(WRITE_SCOPE)
            get_orchestrator().reset_metrics()
            return "Metrics reset."

        return await safe_tool_wrapper(_reset)

    # ── Bulk fill ──────────────────────────────────────────────────────

    @mcp.tool
    async def run_bulk_fill(fill_factor: float = 1.5, seed: int | None = None) -> str:
        """Push synthetic products through the cache until more bytes than
        its capacity have gone in, to watch eviction at work.

        Args:
            fill_factor: Bytes to admit as a multiple of capacity.
            seed: Seed for reproducible item sizes.

        Returns:
            How many items went in and how many were evicted.
        """
        from productcache.config import get_settings
        from productcache.stress import BulkFiller

        async def _fill() -> str:
            require_scope(WRITE_SCOPE)
            settings = get_settings()
            stop = get_fill_stop()
            stop.clear()
            filler = BulkFiller(
                get_orchestrator(),
                min_size=settings.fill_min_size,
                max_size=settings.fill_max_size,
                fill_factor=fill_factor,
                seed=seed,
            )
            report = await filler.run(stop)
            head = "Bulk fill stopped early" if report.stopped else "Bulk fill complete"
            return (
                f"{head}: {report.inserted} items inserted, "
                f"{report.evictions} evictions, "
                f"{report.final_bytes}/{report.capacity_bytes} bytes in use."
            )

        return await safe_tool_wrapper(_fill)

    @mcp.tool
    async def stop_bulk_fill() -> str:
        """Stop a running bulk fill after its current insertion.

        Returns:
            Confirmation.
        """

        async def _stop() -> str:
            require_scope(WRITE_SCOPE)
            get_fill_stop().set()
            return "Stop requested."

        return await safe_tool_wrapper(_stop)

    # ── Snapshots ──────────────────────────────────────────────────────

    @mcp.tool
    async def save_snapshot() -> str:
        """Save the cache contents, metrics and event log to disk so they
        survive a restart.

        Returns:
            How many products were saved.
        """
        store = get_snapshot_store()
        if store is None:
            return "Snapshot storage is not available."

        async def _save() -> str:
            require_scope(WRITE_SCOPE)
            snapshot = get_orchestrator().snapshot()
            await store.save(snapshot)
            return f"Saved a snapshot of {len(snapshot.entries)} cached products."

        return await safe_tool_wrapper(_save)
