"""
Strategy Backtester Server
FastAPI + NumPy
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
import time

from backtester import __version__
from backtester.backtest import run_backtest
from backtester.data import CsvCandleSource
from backtester.errors import (
    CustomStrategyNotFoundError,
    InvalidParameterError,
    NoDataError,
    StrategyNotFoundError,
)
from backtester.models import BacktestRequest, BacktestResult, CustomStrategy
from backtester.registry import build_default_registry, list_strategies
from backtester.storage import CustomStrategyStore

logger = logging.getLogger(__name__)

# CORS origins (restrict in production via CORS_ORIGINS env var)
CORS_ORIGINS = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173"
).split(",")
DATA_DIR = os.environ.get("BACKTESTER_DATA_DIR", "data")
STRATEGY_STORE_PATH = os.environ.get(
    "BACKTESTER_STRATEGY_STORE", os.path.join(DATA_DIR, "custom_strategies.json"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def _configure_logging():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle"""
    _configure_logging()
    if not hasattr(app.state, "registry"):
        app.state.registry = build_default_registry()
    if not hasattr(app.state, "candle_source"):
        app.state.candle_source = CsvCandleSource(DATA_DIR)
    if not hasattr(app.state, "strategy_store"):
        app.state.strategy_store = CustomStrategyStore(STRATEGY_STORE_PATH)
    logger.info(f"🚀 Backtester ready | data dir: {DATA_DIR} | {len(app.state.registry)} built-in strategies")
    yield


# Initialize FastAPI
app = FastAPI(title="Strategy Backtester", version=__version__, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, (NoDataError, StrategyNotFoundError, CustomStrategyNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.exception(f"❌ Unexpected error: {e}")
    return HTTPException(status_code=500, detail=str(e))


@app.get("/")
def read_root():
    """Health check"""
    return {
        "status": "online",
        "service": "Strategy Backtester",
        "version": __version__,
    }


@app.get("/status")
def get_status(request: Request):
    """Get backend status"""
    state = request.app.state
    return {
        "instruments": [
            {"instrument_token": token, "interval": interval}
            for token, interval in state.candle_source.instruments()
        ],
        "builtin_strategies": len(state.registry),
        "custom_strategies": len(state.strategy_store.list()),
    }


@app.get("/strategies")
def get_strategies(request: Request):
    """Built-in and custom strategies for the UI"""
    state = request.app.state
    strategies = list_strategies(state.registry, state.strategy_store)
    logger.info(f"[API/STRATEGIES] Returning {len(strategies)} strategies")
    return {"strategies": [s.model_dump() for s in strategies]}


@app.post("/backtest", response_model=BacktestResult)
def create_backtest(body: BacktestRequest, request: Request):
    """Run single backtest"""
    state = request.app.state
    try:
        start_time = time.time()
        result = run_backtest(
            body.instrument_token,
            body.from_date,
            body.to_date,
            body.interval,
            strategy_id=body.strategy_id,
            strategy_params=body.strategy_params,
            initial_capital=body.initial_capital,
            position_size_percentage=body.position_size_percentage,
            fee_percentage=body.fee_percentage,
            candle_source=state.candle_source,
            registry=state.registry,
            custom_strategy=body.custom_strategy,
            strategy_store=state.strategy_store,
        )
        elapsed = time.time() - start_time
        logger.info(f"[API/BACKTEST] Backtest completed successfully in {elapsed * 1000:.0f}ms")
        return result

    except Exception as e:
        raise _http_error(e)


@app.post("/upload-csv")
async def upload_csv(request: Request, instrument_token: str, interval: Optional[str] = None,
                     file: UploadFile = File(...)):
    """Upload OHLCV candles for an instrument"""
    try:
        start_time = time.time()

        contents = await file.read()
        bars = request.app.state.candle_source.load_csv_text(
            instrument_token, contents.decode('utf-8'), interval)

        elapsed = time.time() - start_time

        return {
            "success": True,
            "instrument_token": instrument_token,
            "interval": interval,
            "bars": bars,
            "elapsed_seconds": round(elapsed, 2),
            "message": f"✅ Loaded {bars} bars in {elapsed:.2f}s",
        }

    except UnicodeDecodeError as e:
        raise HTTPException(status_code=400, detail=f"CSV must be UTF-8: {e}")
    except Exception as e:
        raise _http_error(e)


# ---------------------------------------------------------------------------
# Custom strategies
# ---------------------------------------------------------------------------

@app.get("/custom-strategies")
def get_custom_strategies(request: Request):
    return {"strategies": [s.model_dump() for s in request.app.state.strategy_store.list()]}


@app.post("/custom-strategies", response_model=CustomStrategy, status_code=201)
def create_custom_strategy(strategy: CustomStrategy, request: Request):
    return request.app.state.strategy_store.save(strategy)


@app.get("/custom-strategies/export", response_class=PlainTextResponse)
def export_custom_strategies(request: Request):
    return request.app.state.strategy_store.export_json()


@app.post("/custom-strategies/import")
async def import_custom_strategies(request: Request):
    try:
        text = (await request.body()).decode('utf-8')
        count = request.app.state.strategy_store.import_json(text)
        return {"success": True, "imported": count}
    except UnicodeDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Body must be UTF-8: {e}")
    except Exception as e:
        raise _http_error(e)


@app.get("/custom-strategies/{strategy_id}", response_model=CustomStrategy)
def get_custom_strategy(strategy_id: str, request: Request):
    strategy = request.app.state.strategy_store.get(strategy_id)
    if strategy is None:
        raise HTTPException(status_code=404, detail=f"Custom strategy not found: {strategy_id}")
    return strategy


@app.put("/custom-strategies/{strategy_id}", response_model=CustomStrategy)
def update_custom_strategy(strategy_id: str, updates: Dict[str, Any], request: Request):
    try:
        return request.app.state.strategy_store.update(strategy_id, updates)
    except Exception as e:
        raise _http_error(e)


@app.delete("/custom-strategies/{strategy_id}")
def delete_custom_strategy(strategy_id: str, request: Request):
    try:
        request.app.state.strategy_store.delete(strategy_id)
        return {"success": True}
    except Exception as e:
        raise _http_error(e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=os.environ.get("BACKTESTER_HOST", "0.0.0.0"),
        port=int(os.environ.get("BACKTESTER_PORT", "4000")),
    )
