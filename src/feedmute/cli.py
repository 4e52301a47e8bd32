from pathlib import Path
from typing import List, Optional
import asyncio

import typer

from .config import Settings
from .errors import HashComputationError
from .logging import get_logger
from .hashing import compute_hash
from .oracle import HttpImageFetcher, SimilarityOracle
from .client import HttpOracleTransport, SimilarityClient
from .page import Page, visibility
from .store import MUTED_IMAGES_KEY, SQLiteStore
from .watcher import FeedWatcher

app = typer.Typer(help="feedmute – hide feed posts that show muted images", no_args_is_help=True)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    port: int = typer.Option(3000, help="Port to listen on"),
) -> None:
    """Run the similarity oracle HTTP server."""
    import uvicorn

    from .oracle.app import create_app

    logger = get_logger(__name__)
    logger.info(f"Server running on {host}:{port}")
    uvicorn.run(create_app(settings=Settings.from_env()), host=host, port=port)


@app.command("hash")
def hash_image(
    image_path: Path = typer.Argument(..., exists=True, readable=True, help="Local image file"),
) -> None:
    """Print the perceptual hash of a local image."""
    logger = get_logger(__name__)
    settings = Settings.from_env()
    try:
        fingerprint = compute_hash(
            image_path.read_bytes(),
            hash_size=settings.hash_size,
            resize_to=settings.resize_to,
        )
    except HashComputationError as exc:
        logger.error(f"Cannot hash {image_path}: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(str(fingerprint))


@app.command()
def compare(
    url_a: str = typer.Argument(..., help="First image URL"),
    url_b: str = typer.Argument(..., help="Second image URL"),
) -> None:
    """Fetch two images and print their similarity without a server."""
    settings = Settings.from_env()

    async def run() -> float:
        fetcher = HttpImageFetcher(timeout=settings.fetch_timeout)
        try:
            return await SimilarityOracle(fetcher, settings).compare(url_a, url_b)
        finally:
            await fetcher.close()

    score = asyncio.run(run())
    typer.echo(f"{score:.4f}")


@app.command()
def scan(
    snapshot: Path = typer.Argument(..., exists=True, readable=True, help="Saved feed HTML"),
    mute: Optional[List[str]] = typer.Option(None, "--mute", "-m", help="Muted image URL (repeatable)"),
    server: Optional[str] = typer.Option(None, help="Oracle server URL"),
    db: Optional[Path] = typer.Option(None, help="Store path for cached scores"),
    threshold: Optional[float] = typer.Option(None, help="Similarity threshold for muting"),
) -> None:
    """
    Run the watcher over a saved feed snapshot and print each post's decision.

    Muted images given with --mute replace the stored set; otherwise the set
    saved by a previous run is used.
    """
    logger = get_logger(__name__)
    settings = Settings.from_env()
    if server:
        settings.server_url = server
    if db:
        settings.store_path = db
    if threshold is not None:
        settings.similarity_threshold = threshold
    try:
        settings.validate()
    except ValueError as exc:
        logger.error(str(exc))
        raise typer.Exit(code=2) from exc

    page = Page(snapshot.read_text(encoding="utf-8"))
    store = SQLiteStore(settings.store_path)

    async def run() -> FeedWatcher:
        transport = HttpOracleTransport(settings.server_url, timeout=settings.fetch_timeout * 3)
        client = SimilarityClient(transport, store, limit=settings.max_concurrent_requests)
        watcher = FeedWatcher(page, client, store, settings=settings)
        try:
            if mute:
                await store.set(MUTED_IMAGES_KEY, list(mute))
            await watcher.start()
            await watcher.wait_idle()
        finally:
            await transport.close()
        return watcher

    watcher = asyncio.run(run())
    if not watcher.enabled:
        logger.warning("Muting is disabled in the store; nothing was scanned")

    posts = page.find_posts(settings.post_tag)
    logger.info(f"Scanned {len(posts)} posts against {len(watcher.reference_images)} muted images")
    decisions = watcher.decisions()
    for post_id, outcome in decisions.items():
        typer.echo(f"{outcome.value:6} {post_id}")
    hidden = sum(1 for post in posts if not visibility.is_visible(post))
    typer.echo(f"{hidden}/{len(posts)} posts hidden")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
