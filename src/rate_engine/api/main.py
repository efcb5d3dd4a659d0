import logging
from decimal import Decimal
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config.settings import configure_logging, get_settings
from ..engine import PricingEngine, PricingError, UsageCounters
from .customer_pricing_api import router as customer_pricing_router
from .schemas import QuoteRequest
from .state import get_engine, get_usage

configure_logging(get_settings())
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Shipping Rate Engine API",
    description="Quotes, carrier comparison and customer pricing for shipments",
    version="1.0.0"
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(customer_pricing_router)


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    return JSONResponse(status_code=422, content={"code": exc.code, "message": exc.message, "meta": exc.meta})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"code": "INTERNAL_ERROR", "message": str(exc)})


@app.get("/")
async def root():
    return {"status": "online", "message": "Shipping Rate Engine API Active"}


@app.post("/quotes")
async def create_quote(req: QuoteRequest, engine: PricingEngine = Depends(get_engine),
                       usage: UsageCounters = Depends(get_usage)):
    quote = engine.quote(req.shipment.to_shipment(), usage=usage, **req.engine_kwargs())
    return quote.to_dict()


@app.post("/quotes/commit")
async def commit_quote(req: QuoteRequest, engine: PricingEngine = Depends(get_engine),
                       usage: UsageCounters = Depends(get_usage)):
    """Re-price the shipment and record promotion usage for it."""
    quote = engine.quote(req.shipment.to_shipment(), usage=usage, **req.engine_kwargs())
    committed = engine.commit(quote, usage)
    return {"quote": quote.to_dict(), "committed_promotion_ids": committed}


@app.post("/quotes/compare")
async def compare_quotes(req: QuoteRequest, engine: PricingEngine = Depends(get_engine),
                         usage: UsageCounters = Depends(get_usage)):
    quotes = engine.compare_across_carriers(req.shipment.to_shipment(), usage=usage, **req.engine_kwargs())
    return [q.to_dict() for q in quotes]


@app.get("/carriers")
async def list_carriers(zone_code: Optional[str] = None, weight_kg: Optional[Decimal] = None,
                        engine: PricingEngine = Depends(get_engine)):
    if zone_code is not None and weight_kg is not None:
        carriers = engine.available_carriers(zone_code, weight_kg)
    else:
        carriers = sorted(engine.snapshot.carriers.values(), key=lambda c: c.code)
    return [
        {
            "code": c.code,
            "name": c.name,
            "supported_zones": list(c.supported_zones),
            "max_weight_kg": str(c.max_weight_kg) if c.max_weight_kg is not None else None,
            "max_dimensions": str(c.max_dimensions) if c.max_dimensions else None,
            "is_active": c.is_active,
        }
        for c in carriers
    ]


@app.get("/system/status")
async def get_status(engine: PricingEngine = Depends(get_engine)):
    settings = get_settings()
    snapshot = engine.snapshot
    return {
        "engine_active": True,
        "data_dir": str(settings.data_dir),
        "carriers": len(snapshot.carriers),
        "tables": len(snapshot.tables),
        "customer_pricing": len(snapshot.customer_pricing),
        "promotions": len(snapshot.promotions),
    }
