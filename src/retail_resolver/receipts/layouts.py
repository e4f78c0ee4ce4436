"""Brand specific receipt layouts: where product lines are and how one line reads."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..domain.models import ReceiptLineItem
from ..domain.normalize import parse_price
from ..logging import get_logger

LOG = get_logger("receipts-layouts")


class ReceiptLayout(ABC):
    brand: str = ""

    @abstractmethod
    def product_lines(self, text: str) -> List[str]:
        """Cut the product region out of the full receipt text."""

    @abstractmethod
    def parse_line(self, line: str) -> Optional[ReceiptLineItem]:
        """Parse one product line; None when the line is not a product."""

    def parse(self, text: str) -> List[ReceiptLineItem]:
        items: List[ReceiptLineItem] = []
        for line in self.product_lines(text):
            item = self.parse_line(line)
            if item is None:
                LOG.debug(f"[{self.brand}] skipping non-product line {line!r}")
                continue
            items.append(item)
        LOG.info(f"[{self.brand}] parsed {len(items)} product line(s) from receipt")
        return items


class DmReceiptLayout(ReceiptLayout):
    """dm receipts: ``[Nx ]<name> <total N,NN> <code>`` above the ``SUMME EUR`` line."""

    brand = "dm"
    TOTAL_MARKER = "SUMME EUR"
    HEADER_LINES = 3

    _MULTIPLIER = re.compile(r"^(\d+)x\s+")
    _LINE = re.compile(r"^(.+?)\s+(\d+,\d{2})\s+(\d+)$")

    def product_lines(self, text: str) -> List[str]:
        above = text.split(self.TOTAL_MARKER)[0]
        return above.split("\n")[self.HEADER_LINES : -1]

    def parse_line(self, line: str) -> Optional[ReceiptLineItem]:
        quantity = 1
        rest = line.strip()
        m = self._MULTIPLIER.match(rest)
        if m:
            quantity = int(m.group(1))
            rest = rest[m.end() :]

        m = self._LINE.match(rest)
        if not m:
            return None
        name = m.group(1).strip()
        price = parse_price(m.group(2))
        if price is None:
            return None
        if quantity not in (0, 1):
            price = round(price / quantity, 2)
            # Multi-unit lines also print the unit price inside the name column.
            name = name.replace(f"{price:.2f}".replace(".", ","), "").strip()
        return ReceiptLineItem(product_name=name, price=price, quantity=quantity, code=m.group(3))


class RossmannReceiptLayout(ReceiptLayout):
    """Rossmann receipts: ``[NX] <ean> <name> €<price>[ €<price2>]`` between dashed rules."""

    brand = "rossmann"

    _RULE = re.compile(r"-{20,}")
    _LINE = re.compile(
        r"^'?[♥\s]*(?:(?P<qty>\d+)X[♥\s]+)?(?P<ean>\d{8,14})[♥\s]+(?P<name>.+?)[♥\s]+€\s?(?P<price1>\d+,\d{2})"
        r"(?:[♥\s]+€\s?(?P<price2>\d+,\d{2}))?"
    )

    def product_lines(self, text: str) -> List[str]:
        parts = self._RULE.split(text)
        if len(parts) < 3:
            LOG.warning("[rossmann] receipt has no dashed product region")
            return []
        return [ln for ln in parts[1].split("\n") if ln.strip()]

    def parse_line(self, line: str) -> Optional[ReceiptLineItem]:
        m = self._LINE.match(line)
        if not m:
            return None
        price = parse_price(m.group("price2") or m.group("price1"))
        if price is None:
            return None
        return ReceiptLineItem(
            product_name=re.sub(r"♥+", " ", m.group("name")).strip(),
            price=price,
            quantity=int(m.group("qty")) if m.group("qty") else 1,
            ean=m.group("ean"),
        )


LAYOUTS: Dict[str, ReceiptLayout] = {
    "dm": DmReceiptLayout(),
    "rossmann": RossmannReceiptLayout(),
}


__all__ = ["ReceiptLayout", "DmReceiptLayout", "RossmannReceiptLayout", "LAYOUTS"]
