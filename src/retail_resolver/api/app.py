from __future__ import annotations

import contextlib
from typing import Any, AsyncIterator, Dict, List, Optional

from starlette.applications import Starlette
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..brands.base import BrandAdapter
from ..config import KNOWN_BRANDS, ResolverConfig
from ..engine import ResolverEngine, build_engine
from ..errors import NotFoundError, ResolverError
from ..logging import get_logger

LOG = get_logger("api")

RECEIPT_FIELD = "pdf"


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return body


def _brand(request: Request) -> str:
    brand = str(request.path_params["brand"]).lower()
    if brand not in KNOWN_BRANDS:
        raise HTTPException(status_code=400, detail="Invalid brand specified")
    return brand


def _url_param(request: Request) -> str:
    url = request.query_params.get("url")
    if not url:
        raise HTTPException(status_code=400, detail="Missing url query parameter")
    return url


async def _not_found(_: Request, exc: Exception) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=404)


async def _bad_request(_: Request, exc: Exception) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=400)


async def _upstream_failed(_: Request, exc: Exception) -> JSONResponse:
    LOG.warning(f"Upstream failure surfaced to client: {exc}")
    return JSONResponse({"detail": str(exc)}, status_code=502)


def create_app(
    engine: Optional[ResolverEngine] = None,
    *,
    config: Optional[ResolverConfig] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create the Starlette app exposing lookup, article, receipt and store endpoints.

    When no engine is passed one is built from ``config`` and started and
    stopped with the application lifespan.
    """
    owns_engine = engine is None
    eng = engine or build_engine(config)

    def _adapter(brand: str) -> BrandAdapter:
        adapter = eng.adapters.get(brand)
        if adapter is None:
            raise HTTPException(status_code=400, detail=f"Brand {brand} is not configured")
        return adapter

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "db_path": eng.db.db_path, "brands": eng.settings.brands()})

    async def lookup(request: Request) -> JSONResponse:
        return JSONResponse(await eng.lookup.lookup(request.path_params["code"]))

    async def upsert_article(request: Request) -> JSONResponse:
        body = await _json_body(request)
        message, article = await eng.articles.upsert_and_refresh(
            str(body.get("ean") or ""), str(body.get("name") or "")
        )
        return JSONResponse({"message": message, "article": article.to_dict()})

    async def refresh_prices(request: Request) -> JSONResponse:
        article = await eng.articles.force_refresh_prices(request.path_params["ean"])
        return JSONResponse(article.to_dict())

    async def refresh_stores(request: Request) -> JSONResponse:
        article = await eng.articles.force_refresh_availability(request.path_params["ean"])
        return JSONResponse(article.to_dict())

    async def list_articles(_: Request) -> JSONResponse:
        return JSONResponse([a.to_dict() for a in eng.articles.list()])

    async def article_detail(request: Request) -> JSONResponse:
        article = eng.articles.get(request.path_params["ean"])
        if article is None:
            raise HTTPException(status_code=404, detail="Article not found")
        return JSONResponse(article.to_dict())

    async def delete_article(request: Request) -> JSONResponse:
        ean = request.path_params["ean"]
        if not eng.articles.delete(ean):
            raise HTTPException(status_code=404, detail="Article not found")
        return JSONResponse({"message": "Article deleted successfully", "ean": ean})

    async def receipt(request: Request) -> JSONResponse:
        brand = _brand(request)
        form = await request.form()
        upload = form.get(RECEIPT_FIELD)
        if not isinstance(upload, UploadFile):
            raise HTTPException(status_code=400, detail="No PDF uploaded")
        data = await upload.read()
        await upload.close()
        items = await eng.receipts.match_document(brand, data)
        return JSONResponse(items)

    async def brand_ean(request: Request) -> JSONResponse:
        brand = _brand(request)
        ean = request.path_params["ean"]
        details = await _adapter(brand).resolve_by_code(ean)
        return JSONResponse({"ean": ean, **details.to_dict()})

    async def brand_product(request: Request) -> JSONResponse:
        brand = _brand(request)
        details = await _adapter(brand).fetch_product_details(_url_param(request))
        return JSONResponse(details.to_dict())

    async def brand_store_product(request: Request) -> JSONResponse:
        brand = _brand(request)
        adapter = _adapter(brand)
        reference = adapter.availability_reference(
            request.query_params.get("url"), request.query_params.get("articleNumber")
        )
        if not reference:
            raise HTTPException(status_code=400, detail="Missing product reference (url or articleNumber)")
        records = await adapter.check_stores(reference, eng.stores.list(brand))
        return JSONResponse([r.to_dict() for r in records])

    async def search_brand_stores(request: Request) -> JSONResponse:
        brand = _brand(request)
        stores = await _adapter(brand).search_stores(str(request.path_params["query"]))
        return JSONResponse([s.to_payload() for s in stores])

    async def brand_stores(request: Request) -> JSONResponse:
        brand = _brand(request)
        return JSONResponse([s.to_payload() for s in eng.stores.list(brand)])

    async def save_store(request: Request) -> JSONResponse:
        result = eng.stores.save(str(request.path_params["brand"]), await _json_body(request))
        if not result["success"]:
            return JSONResponse({"error": result["message"]}, status_code=400)
        return JSONResponse({"message": result["message"]}, status_code=201)

    async def delete_store(request: Request) -> JSONResponse:
        brand = _brand(request)
        result = eng.stores.delete(str(request.path_params["store_id"]), brand=brand)
        return JSONResponse(result, status_code=200 if result["success"] else 404)

    async def get_settings(_: Request) -> JSONResponse:
        return JSONResponse(eng.settings.to_dict())

    async def save_settings(request: Request) -> JSONResponse:
        body = await _json_body(request)
        brands = body.get("brands", body.get("stores"))
        if brands is not None:
            if not isinstance(brands, list):
                raise HTTPException(status_code=400, detail="brands must be a list")
            eng.settings.set_brands(brands)
        return JSONResponse({"success": True, "settings": eng.settings.to_dict()})

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/lookup/{code}", lookup, methods=["GET"]),
        Route("/api/article", upsert_article, methods=["POST"]),
        Route("/api/article/prices/{ean}", refresh_prices, methods=["PUT"]),
        Route("/api/article/stores/{ean}", refresh_stores, methods=["PUT"]),
        Route("/api/article/{ean}", article_detail, methods=["GET"]),
        Route("/api/article/{ean}", delete_article, methods=["DELETE"]),
        Route("/api/articles", list_articles, methods=["GET"]),
        Route("/api/settings", get_settings, methods=["GET"]),
        Route("/api/settings", save_settings, methods=["POST"]),
        Route("/api/{brand}/receipt", receipt, methods=["POST"]),
        Route("/api/{brand}/ean/{ean}", brand_ean, methods=["GET"]),
        Route("/api/{brand}/product", brand_product, methods=["GET"]),
        Route("/api/{brand}/store/product", brand_store_product, methods=["GET"]),
        Route("/api/{brand}/store/location/{query}", search_brand_stores, methods=["GET"]),
        Route("/api/{brand}/store", brand_stores, methods=["GET"]),
        Route("/api/{brand}/store", save_store, methods=["POST"]),
        Route("/api/{brand}/store/{store_id}", delete_store, methods=["DELETE"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_: Starlette) -> AsyncIterator[None]:
        if owns_engine:
            await eng.start()
        try:
            yield
        finally:
            if owns_engine:
                await eng.shutdown()

    app = Starlette(
        debug=False,
        routes=routes,
        lifespan=lifespan,
        exception_handlers={
            NotFoundError: _not_found,
            ValueError: _bad_request,
            ResolverError: _upstream_failed,
        },
    )
    app.state.engine = eng

    origins = allow_origins or ["http://localhost:5173", "http://127.0.0.1:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


__all__ = ["create_app"]
