"""
CLI Main - Typer-based command-line interface.

Usage:
    farmfinder init
    farmfinder load data/marketplace.json
    farmfinder search "tomato" --lat 52.0 --lng 19.0 --radius 10 --sort distance
    farmfinder suggest tom
    farmfinder sellers --lat 52.0 --lng 19.0
    farmfinder serve
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from farmfinder.adapters.sqlite import SQLiteRepository
from farmfinder.config import FarmFinderError, get_settings
from farmfinder.domains.discovery import (
    Availability,
    DeliveryMethod,
    DiscoveryEngine,
    Freshness,
    GeoPoint,
    Product,
    Review,
    SearchQuery,
    SearchResult,
    Seller,
)

app = typer.Typer(
    name="farmfinder",
    help="FarmFinder - Local farm product discovery",
    add_completion=False,
)
console = Console()


@asynccontextmanager
async def _open_engine(db_path: Path | None) -> AsyncIterator[tuple[DiscoveryEngine, SQLiteRepository]]:
    """Open the repository and build an engine over it."""
    settings = get_settings()
    repo = SQLiteRepository(db_path or settings.db_path)
    await repo.initialize()
    try:
        yield DiscoveryEngine.from_settings(repo, repo, repo, settings), repo
    finally:
        await repo.close()


def _position(lat: float | None, lng: float | None) -> GeoPoint | None:
    """Both coordinates or neither."""
    if lat is None and lng is None:
        return None
    if lat is None or lng is None:
        console.print("[red]Error:[/red] --lat and --lng must be given together")
        raise typer.Exit(1)
    return GeoPoint(lat=lat, lng=lng)


@app.command()
def search(
    text: str = typer.Argument("", help="Free-text query"),
    lat: float | None = typer.Option(None, "--lat", help="Buyer latitude"),
    lng: float | None = typer.Option(None, "--lng", help="Buyer longitude"),
    radius: float | None = typer.Option(None, "--radius", "-r", help="Radius in km"),
    category: list[str] | None = typer.Option(None, "--category", "-c", help="Category (repeatable)"),
    min_price: float | None = typer.Option(None, "--min-price", help="Minimum price"),
    max_price: float | None = typer.Option(None, "--max-price", help="Maximum price"),
    organic: bool = typer.Option(False, "--organic", help="Organic products only"),
    in_season: bool = typer.Option(False, "--in-season", help="In-season products only"),
    freshness: Freshness | None = typer.Option(None, "--freshness", help="Freshness tag"),
    availability: Availability = typer.Option(
        Availability.ALL, "--availability", "-a", help="Stock availability"
    ),
    delivery: list[DeliveryMethod] | None = typer.Option(
        None, "--delivery", "-d", help="Delivery method (repeatable)"
    ),
    min_rating: float = typer.Option(0.0, "--min-rating", help="Minimum seller rating"),
    verified: bool = typer.Option(False, "--verified", help="Verified sellers only"),
    sort: str | None = typer.Option(None, "--sort", "-s", help="Sort key"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Page size"),
    offset: int = typer.Option(0, "--offset", help="Matches to skip (next offset of the previous page)"),
    db: Path | None = typer.Option(None, "--db", help="Database path"),
) -> None:
    """Search products near a position."""
    try:
        query = SearchQuery(
            text=text,
            position=_position(lat, lng),
            radius_km=radius,
            categories=category or [],
            min_price=Decimal(str(min_price)) if min_price is not None else None,
            max_price=Decimal(str(max_price)) if max_price is not None else None,
            organic=organic,
            in_season=in_season,
            freshness=freshness,
            availability=availability,
            delivery_methods=set(delivery or []),
            min_seller_rating=min_rating,
            verified_only=verified,
            sort_by=sort,
            page_size=get_settings().default_page_size if limit is None else limit,
            offset=offset,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid query:[/red] {e}")
        raise typer.Exit(1)

    asyncio.run(_search_async(query, db))


async def _search_async(query: SearchQuery, db: Path | None) -> None:
    """Async search implementation."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Searching...", total=None)
        try:
            async with _open_engine(db) as (engine, _):
                result = await engine.search(query)
        except FarmFinderError as e:
            console.print(f"[red]Search failed:[/red] {e.message}")
            raise typer.Exit(1)

    _print_result(result)


def _print_result(result: SearchResult) -> None:
    """Render a search result."""
    if not result.products:
        if result.should_suggest_broadening:
            console.print(
                Panel(
                    "No products match these filters.\n"
                    "Try a wider radius or fewer filters.",
                    title="No Results",
                    style="yellow",
                )
            )
        else:
            console.print("[yellow]No products found.[/yellow]")
        return

    table = Table(title="Products")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Product", style="cyan")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Distance", justify="right")
    table.add_column("Seller")
    table.add_column("Stock", justify="right")

    for i, match in enumerate(result.products, 1):
        product = match.product
        seller_name = (
            match.seller.farm_name or match.seller.display_name
            if match.seller
            else product.farm_name or product.seller_name or product.seller_id
        )
        table.add_row(
            str(i),
            product.name,
            f"{product.price:.2f}",
            f"{match.distance_km:.1f} km" if match.distance_km is not None else "-",
            seller_name,
            str(product.stock),
        )

    console.print(table)

    sellers = ", ".join(
        f"{s.farm_name or s.display_name or s.id} ({s.product_count})" for s in result.sellers
    )
    console.print(f"[bold]Sellers:[/bold] {sellers}")

    more = f" - next page: --offset {result.next_offset}" if result.has_more else ""
    console.print(f"[dim]Showing {len(result.products)} of {result.total_found}{more}[/dim]")


@app.command()
def suggest(
    text: str = typer.Argument(..., help="Partial query"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum suggestions"),
    db: Path | None = typer.Option(None, "--db", help="Database path"),
) -> None:
    """Autocomplete product names, categories and tags."""
    asyncio.run(_suggest_async(text, limit, db))


async def _suggest_async(text: str, limit: int, db: Path | None) -> None:
    """Async suggestions implementation."""
    try:
        async with _open_engine(db) as (engine, _):
            entries = await engine.suggestions(text, limit=limit)
    except FarmFinderError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    if not entries:
        console.print("[dim]No suggestions[/dim]")
        return
    for entry in entries:
        console.print(f"  {entry.text} [dim]({entry.kind.value})[/dim]")


@app.command()
def sellers(
    lat: float = typer.Option(..., "--lat", help="Latitude"),
    lng: float = typer.Option(..., "--lng", help="Longitude"),
    radius: float | None = typer.Option(None, "--radius", "-r", help="Radius in km"),
    verified: bool = typer.Option(False, "--verified", help="Verified sellers only"),
    db: Path | None = typer.Option(None, "--db", help="Database path"),
) -> None:
    """List sellers near a position."""
    asyncio.run(_sellers_async(GeoPoint(lat=lat, lng=lng), radius, verified, db))


async def _sellers_async(
    position: GeoPoint,
    radius: float | None,
    verified: bool,
    db: Path | None,
) -> None:
    """Async seller listing."""
    try:
        async with _open_engine(db) as (engine, _):
            nearby = await engine.sellers_in_radius(position, radius, verified_only=verified)
    except FarmFinderError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    table = Table(title=f"Sellers near {position.lat:.4f}, {position.lng:.4f}")
    table.add_column("Farm", style="cyan")
    table.add_column("Seller")
    table.add_column("Distance", justify="right")
    table.add_column("Verified", justify="center")
    for seller in nearby:
        table.add_row(
            seller.farm_name or "-",
            seller.display_name or seller.id,
            f"{seller.distance_km:.1f} km",
            "[green]yes[/green]" if seller.verified else "no",
        )
    console.print(table)


@app.command()
def load(
    json_path: Path = typer.Argument(..., help="JSON export with sellers, products, reviews"),
    db: Path | None = typer.Option(None, "--db", help="Database path"),
) -> None:
    """Load marketplace data from a JSON export."""
    if not json_path.exists():
        console.print(f"[red]Error:[/red] File not found: {json_path}")
        raise typer.Exit(1)

    asyncio.run(_load_async(json_path, db))


async def _load_async(json_path: Path, db: Path | None) -> None:
    """Validate and insert every row of the export."""
    data = json.loads(json_path.read_text(encoding="utf-8"))

    try:
        sellers_in = [Seller.model_validate(row) for row in data.get("sellers", [])]
        products_in = [Product.model_validate(row) for row in data.get("products", [])]
        reviews_in = [Review.model_validate(row) for row in data.get("reviews", [])]
    except ValidationError as e:
        console.print(f"[red]Invalid data:[/red] {e}")
        raise typer.Exit(1)

    total = len(sellers_in) + len(products_in) + len(reviews_in)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Loading...", total=total)
        try:
            async with _open_engine(db) as (_, repo):
                for seller in sellers_in:
                    await repo.insert_seller(seller)
                    progress.advance(task)
                for product in products_in:
                    await repo.insert_product(product)
                    progress.advance(task)
                for review in reviews_in:
                    await repo.insert_review(review)
                    progress.advance(task)
        except FarmFinderError as e:
            console.print(f"[red]Load failed:[/red] {e.message}")
            raise typer.Exit(1)

    table = Table(title="Load Summary")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", style="green", justify="right")
    table.add_row("sellers", str(len(sellers_in)))
    table.add_row("products", str(len(products_in)))
    table.add_row("reviews", str(len(reviews_in)))
    console.print(table)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print("\n[green]Starting FarmFinder API server[/green]")
    console.print(f"[dim]http://{host}:{port}[/dim]\n")

    uvicorn.run(
        "farmfinder.interfaces.api:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def init(
    db: Path | None = typer.Option(None, "--db", help="Database path"),
) -> None:
    """Create the data directory and database schema."""
    asyncio.run(_init_async(db))


async def _init_async(db: Path | None) -> None:
    """Async initialization."""
    settings = get_settings()
    db_path = db or settings.db_path

    repo = SQLiteRepository(db_path)
    try:
        await repo.initialize()
        count = await repo.get_product_count()
    except FarmFinderError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        await repo.close()

    console.print("\n[green]Initialization complete![/green]")
    console.print(f"[dim]Database: {db_path} ({count} products)[/dim]")


@app.command()
def version() -> None:
    """Show version information."""
    from farmfinder import __version__

    console.print(f"FarmFinder v{__version__}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
