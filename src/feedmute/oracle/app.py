"""
FastAPI application exposing the similarity oracle.

Run with: feedmute serve  (or uvicorn feedmute.oracle.app:app --port 3000)
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .. import __version__
from ..config import Settings
from ..logging import get_logger
from .service import BatchPair, HttpImageFetcher, SimilarityOracle

logger = get_logger(__name__)


class CompareRequest(BaseModel):
    img1: str
    img2: str


class CompareResponse(BaseModel):
    similarity: float


class PairRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    img1: str
    img2: str
    cache_key: Optional[str] = Field(default=None, alias="cacheKey")


class PairResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    img1: str
    img2: str
    similarity: float
    cache_key: Optional[str] = Field(default=None, alias="cacheKey")


class BatchRequest(BaseModel):
    pairs: List[PairRequest]


class BatchResponse(BaseModel):
    results: List[PairResult]


def create_app(oracle: Optional[SimilarityOracle] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the oracle HTTP app.

    Args:
        oracle: Oracle to serve; a network-backed one is created when omitted
        settings: Settings used for the default oracle

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings()
    fetcher: Optional[HttpImageFetcher] = None
    if oracle is None:
        fetcher = HttpImageFetcher(timeout=settings.fetch_timeout)
        oracle = SimilarityOracle(fetcher, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Similarity oracle v{__version__} starting")
        yield
        if fetcher is not None:
            await fetcher.close()

    app = FastAPI(
        title="feedmute oracle",
        description="Perceptual-hash image similarity",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/compare", response_model=CompareResponse)
    async def compare(request: CompareRequest):
        logger.debug("Received request at /compare")
        try:
            score = await oracle.compare(request.img1, request.img2)
        except Exception as exc:
            logger.error(f"Error comparing images: {exc}")
            return JSONResponse(status_code=500, content={"similarity": 0})
        return CompareResponse(similarity=score)

    @app.post("/compareBatch", response_model=BatchResponse, response_model_by_alias=True)
    async def compare_batch(request: BatchRequest):
        logger.debug(f"Received request at /compareBatch with {len(request.pairs)} pairs")
        results: List[PairResult] = []
        for pair in request.pairs:
            try:
                (result,) = await oracle.compare_batch(
                    [BatchPair(pair.img1, pair.img2, pair.cache_key)]
                )
                score = result.similarity
            except Exception as exc:
                logger.error(f"Error comparing {pair.img1} and {pair.img2}: {exc}")
                score = 0.0
            results.append(
                PairResult(img1=pair.img1, img2=pair.img2, similarity=score, cache_key=pair.cache_key)
            )
        return BatchResponse(results=results)

    return app


app = create_app(settings=Settings.from_env())
