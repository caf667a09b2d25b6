# domainscan/scanner/registry.py
"""
Scanner registry.

Built once at process start (see scanner.modules.build_default_registry)
and only read afterwards. Scanners cannot be replaced or removed.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional

from .base import BaseScanner

logger = logging.getLogger(__name__)


class ScannerRegistry:
    def __init__(self, scanners: Optional[List[BaseScanner]] = None):
        self._scanners: Dict[str, BaseScanner] = {}
        for s in scanners or []:
            self.register(s)

    def register(self, scanner: BaseScanner) -> BaseScanner:
        if not scanner.id or scanner.id == "base":
            raise ValueError(f"{type(scanner).__name__} has no scanner id")
        if scanner.id in self._scanners:
            raise ValueError(f"Scanner already registered: {scanner.id}")
        self._scanners[scanner.id] = scanner
        logger.debug("Registered scanner %s (order=%s)", scanner.id, scanner.order)
        return scanner

    def all(self) -> List[BaseScanner]:
        """Scanners in execution order: ascending order weight, unweighted last."""
        indexed = list(enumerate(self._scanners.values()))
        indexed.sort(key=lambda pair: (
            pair[1].order is None,
            pair[1].order if pair[1].order is not None else 0,
            pair[0],
        ))
        return [s for _, s in indexed]

    def get(self, scanner_id: str) -> Optional[BaseScanner]:
        return self._scanners.get(scanner_id)

    def ids(self) -> List[str]:
        return [s.id for s in self.all()]

    def __contains__(self, scanner_id: object) -> bool:
        return scanner_id in self._scanners

    def __len__(self) -> int:
        return len(self._scanners)

    def __iter__(self) -> Iterator[BaseScanner]:
        return iter(self.all())
