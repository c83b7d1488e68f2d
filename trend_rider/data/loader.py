"""
Market Data Loader

Pulls active markets from the Polymarket Gamma REST API and normalises them
into InstrumentSnapshot records for the scanner.
"""

import json
from typing import Any, Dict, List, Optional

import requests
import structlog

from trend_rider.core.config import Config
from trend_rider.core.models import InstrumentSnapshot

logger = structlog.get_logger(__name__)


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if out == out else default  # NaN


def _maybe_json_list(value: Any) -> List[Any]:
    """Gamma encodes some list fields as JSON strings."""
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip().startswith("["):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return []
        return decoded if isinstance(decoded, list) else []
    return []


class GammaMarketLoader:
    """
    SnapshotProvider over the Gamma `/markets` endpoint.

    Handles:
    - Pagination by limit/offset (one page per cycle by default)
    - Response shapes: bare list, {"data": [...]}, {"markets": [...]}
    - JSON-string list fields (outcomePrices, clobTokenIds)
    """

    MARKETS_PATH = "/markets"

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        """
        Initialize data loader.

        Args:
            config: System configuration
            session: Optional requests session (shared connection pool)
        """
        self.config = config
        self.session = session or requests.Session()

    def fetch_snapshots(self) -> List[InstrumentSnapshot]:
        """Fetch one page of active markets sized by scan.market_limit."""
        return self.get_markets(limit=self.config.scan.market_limit)

    def get_markets(self, limit: int = 50, offset: int = 0) -> List[InstrumentSnapshot]:
        """
        Fetch active markets.

        Raises:
            requests.RequestException: on transport errors or non-2xx status
            ValueError: on an unrecognised response body
        """
        url = f"{self.config.gamma.api_url.rstrip('/')}{self.MARKETS_PATH}"
        params = {"limit": limit, "offset": offset, "active": "true", "closed": "false"}

        response = self.session.get(url, params=params, timeout=self.config.gamma.timeout_sec)
        response.raise_for_status()
        body = response.json()

        if isinstance(body, list):
            items = body
        elif isinstance(body, dict) and isinstance(body.get("data"), list):
            items = body["data"]
        elif isinstance(body, dict) and isinstance(body.get("markets"), list):
            items = body["markets"]
        else:
            raise ValueError("Unexpected Gamma response format")

        snapshots = [self.parse_market(item) for item in items if isinstance(item, dict)]
        snapshots = [s for s in snapshots if s is not None]
        logger.debug("markets_fetched", count=len(snapshots), offset=offset)
        return snapshots

    @staticmethod
    def parse_market(item: Dict[str, Any]) -> Optional[InstrumentSnapshot]:
        """Normalise one Gamma market; None if it has no id."""
        market_id = item.get("condition_id") or item.get("conditionId") or item.get("id")
        if not market_id:
            return None

        prices = _maybe_json_list(item.get("outcomePrices") or item.get("outcome_prices"))

        token_id = None
        tokens = item.get("tokens")
        if isinstance(tokens, list) and tokens and isinstance(tokens[0], dict):
            token_id = tokens[0].get("token_id")
        if token_id is None:
            clob_ids = _maybe_json_list(item.get("clobTokenIds"))
            token_id = str(clob_ids[0]) if clob_ids else None

        return InstrumentSnapshot(
            id=str(market_id),
            question=item.get("question") or item.get("title") or "",
            outcome_prices=[str(p) for p in prices],
            volume=_to_float(item.get("volume")),
            liquidity=_to_float(item.get("liquidity")),
            category=item.get("category") or None,
            token_id=token_id,
        )
