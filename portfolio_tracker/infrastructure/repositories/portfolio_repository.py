"""
Portfolio repository.

Read-only view over the persistence layer. Writes happen elsewhere;
the performance engine only ever reads portfolio snapshots.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

import yaml

from portfolio_tracker.domain.models import Holding, Portfolio

logger = logging.getLogger(__name__)


class PortfolioRepository(Protocol):
    async def get_portfolio_by_id(self, portfolio_id: str) -> Optional[Portfolio]:
        ...

    async def get_all_portfolios(self) -> List[Portfolio]:
        ...


class InMemoryPortfolioRepository:
    def __init__(self, portfolios: Iterable[Portfolio] = ()):
        self._portfolios: Dict[str, Portfolio] = {p.id: p for p in portfolios}

    async def get_portfolio_by_id(self, portfolio_id: str) -> Optional[Portfolio]:
        return self._portfolios.get(portfolio_id)

    async def get_all_portfolios(self) -> List[Portfolio]:
        return list(self._portfolios.values())

    def put(self, portfolio: Portfolio) -> None:
        self._portfolios[portfolio.id] = portfolio


def _parse_dt(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def portfolio_from_dict(data: dict) -> Portfolio:
    holdings = tuple(
        Holding(
            id=str(h.get("id") or f"{data['id']}:{idx}"),
            symbol=h["symbol"],
            amount=Decimal(str(h["amount"])),
        )
        for idx, h in enumerate(data.get("holdings") or [])
    )
    return Portfolio(
        id=str(data["id"]),
        name=data.get("name") or str(data["id"]),
        description=data.get("description"),
        holdings=holdings,
        created_at=_parse_dt(data.get("created_at")),
        updated_at=_parse_dt(data.get("updated_at")),
        created_by=data.get("created_by"),
    )


def load_portfolios(seed_file: Path) -> List[Portfolio]:
    """Load portfolios from a YAML (or JSON) seed file; missing file -> []."""
    if not seed_file.exists():
        logger.info("No portfolio seed file at %s", seed_file)
        return []
    with open(seed_file, "r") as f:
        data = yaml.safe_load(f) or {}
    portfolios = [portfolio_from_dict(item) for item in data.get("portfolios", [])]
    logger.info("Loaded %d portfolios from %s", len(portfolios), seed_file)
    return portfolios
