#===========================================================================
# ocsync/opencart/catalog_reader.py
# OpenCart database interface module.
# Read-only queries against the OpenCart schema (products, descriptions,
# categories, manufacturers, options and option values).
#===========================================================================
from __future__ import annotations

import html
import logging
import re
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from ocsync.config import settings
from ocsync.db import check_connection, get_engine
from ocsync.exceptions import SourceConnectionError, StepFailure
from ocsync.opencart.models import (
    ProductDescription,
    SourceOption,
    SourceOptionValue,
    SourceProduct,
)

logger = logging.getLogger("uvicorn.error")

_PREFIX_RE = re.compile(r"^\w*$")


def _unescape(value: Any) -> str:
    """OpenCart stores text fields HTML-entity encoded."""
    return html.unescape(str(value or "")).strip()


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


class OpenCartReader:
    """
    Pure reads against one OpenCart database. No mutation, no caching:
    every call hits the database so repeated steps see the same rows.
    """

    def __init__(self, engine: AsyncEngine, table_prefix: str = "oc_", language_id: int = 1):
        if not _PREFIX_RE.match(table_prefix or ""):
            raise ValueError(f"Invalid OpenCart table prefix: {table_prefix!r}")
        self.engine = engine
        self.prefix = table_prefix or ""
        self.language_id = language_id

    @classmethod
    def from_settings(cls) -> "OpenCartReader":
        return cls(
            get_engine(),
            table_prefix=settings.OC_TABLE_PREFIX,
            language_id=settings.OC_LANGUAGE_ID,
        )

    def _t(self, name: str) -> str:
        return f"{self.prefix}{name}"

    async def _fetch(self, sql: str, **params) -> List[Dict[str, Any]]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(sql), params)
                return [dict(row) for row in result.mappings().all()]
        except (OperationalError, InterfaceError) as e:
            logger.error("[DB] OpenCart query failed: %s", e)
            raise SourceConnectionError(f"OpenCart DB Error: {e.orig if e.orig else e}") from e
        except DBAPIError as e:
            # wrong table prefix, missing table or column: the step fails, the run halts
            logger.error("[DB] OpenCart query rejected: %s", e)
            raise StepFailure(f"OpenCart DB Error: {e.orig if e.orig else e}") from e

    async def ping(self) -> None:
        await check_connection(self.engine)

    # ---- Product ranking ----

    async def count_products_with_options(self) -> int:
        rows = await self._fetch(
            f"SELECT COUNT(DISTINCT product_id) AS cnt FROM {self._t('product_option')}"
        )
        return int(rows[0]["cnt"] or 0) if rows else 0

    async def product_id_at(self, rank: int) -> Optional[int]:
        """External id of the nth (0-based) distinct product that declares options, ascending."""
        if rank < 0:
            return None
        rows = await self._fetch(
            f"""
            SELECT DISTINCT product_id
              FROM {self._t('product_option')}
             ORDER BY product_id
             LIMIT 1 OFFSET :offset
            """,
            offset=int(rank),
        )
        return int(rows[0]["product_id"]) if rows else None

    # ---- Product fields ----

    async def get_product(self, product_id: int) -> Optional[SourceProduct]:
        rows = await self._fetch(
            f"""
            SELECT product_id, model, price, image, manufacturer_id
              FROM {self._t('product')}
             WHERE product_id = :pid
             LIMIT 1
            """,
            pid=product_id,
        )
        if not rows:
            return None
        r = rows[0]
        return SourceProduct(
            product_id=int(r["product_id"]),
            model=_unescape(r.get("model")),
            price=_decimal(r.get("price")),
            image=(r.get("image") or None),
            manufacturer_id=int(r.get("manufacturer_id") or 0),
        )

    async def get_description(self, product_id: int) -> Optional[ProductDescription]:
        rows = await self._fetch(
            f"""
            SELECT description, meta_description
              FROM {self._t('product_description')}
             WHERE product_id = :pid
               AND language_id = :lang
             LIMIT 1
            """,
            pid=product_id,
            lang=self.language_id,
        )
        if not rows:
            return None
        return ProductDescription(
            description=_unescape(rows[0].get("description")),
            meta_description=_unescape(rows[0].get("meta_description")),
        )

    async def get_category_names(self, product_id: int) -> List[str]:
        rows = await self._fetch(
            f"""
            SELECT cd.name
              FROM {self._t('product_to_category')} pc
              JOIN {self._t('category_description')} cd
                ON pc.category_id = cd.category_id
             WHERE pc.product_id = :pid
               AND cd.language_id = :lang
             ORDER BY pc.category_id
            """,
            pid=product_id,
            lang=self.language_id,
        )
        names = []
        for r in rows:
            name = _unescape(r.get("name"))
            if name and name not in names:
                names.append(name)
        return names

    async def get_manufacturer_name(self, product_id: int) -> Optional[str]:
        rows = await self._fetch(
            f"""
            SELECT m.name
              FROM {self._t('product')} p
              JOIN {self._t('manufacturer')} m
                ON p.manufacturer_id = m.manufacturer_id
             WHERE p.product_id = :pid
             LIMIT 1
            """,
            pid=product_id,
        )
        if not rows:
            return None
        return _unescape(rows[0].get("name")) or None

    # ---- Options ----

    async def get_options(self, product_id: int) -> List[SourceOption]:
        """
        Options of one product in source table order, each with its values in
        source table order. Options without any localized value rows are kept
        (with an empty value list); the option mapper decides what to do.
        """
        opt_rows = await self._fetch(
            f"""
            SELECT po.product_option_id, od.name AS option_name
              FROM {self._t('product_option')} po
              JOIN {self._t('option_description')} od
                ON po.option_id = od.option_id
             WHERE po.product_id = :pid
               AND od.language_id = :lang
             ORDER BY po.product_option_id
            """,
            pid=product_id,
            lang=self.language_id,
        )
        if not opt_rows:
            return []

        options: "OrderedDict[int, SourceOption]" = OrderedDict()
        for r in opt_rows:
            poid = int(r["product_option_id"])
            options[poid] = SourceOption(product_option_id=poid, name=_unescape(r.get("option_name")))

        val_rows = await self._fetch(
            f"""
            SELECT pov.product_option_id, ovd.name, pov.price, pov.price_prefix
              FROM {self._t('product_option_value')} pov
              JOIN {self._t('option_value_description')} ovd
                ON pov.option_value_id = ovd.option_value_id
             WHERE pov.product_id = :pid
               AND ovd.language_id = :lang
             ORDER BY pov.product_option_id, pov.product_option_value_id
            """,
            pid=product_id,
            lang=self.language_id,
        )
        for r in val_rows:
            opt = options.get(int(r["product_option_id"]))
            if opt is None:
                continue
            opt.values.append(SourceOptionValue(
                name=_unescape(r.get("name")),
                price=_decimal(r.get("price")),
                price_prefix=(r.get("price_prefix") or "+"),
            ))
        return list(options.values())
