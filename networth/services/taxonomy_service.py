"""
Asset taxonomy service.

Loads the valid (asset_class, subclass) pairs the classifier may assign and
seeds the default taxonomy from YAML on first start.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import structlog
import yaml
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from networth.exceptions import TaxonomyUnavailableError
from networth.models.snapshot import AssetClass, RiskLevel
from networth.models.taxonomy import AssetSubclassMapping

logger = structlog.get_logger(__name__)

DEFAULT_TAXONOMY_PATH = Path(__file__).resolve().parent.parent / "data" / "asset_taxonomy.yaml"


@dataclass(frozen=True)
class TaxonomyEntry:
    """One valid subclass with its risk and return profile."""

    asset_class: AssetClass
    subclass_code: str
    display_name: str
    risk_level: RiskLevel
    expected_return: float
    keywords: Tuple[str, ...] = ()
    description: Optional[str] = None

    @classmethod
    def from_model(cls, row: AssetSubclassMapping) -> "TaxonomyEntry":
        return cls(
            asset_class=AssetClass(row.asset_class),
            subclass_code=row.subclass_code,
            display_name=row.display_name,
            risk_level=RiskLevel(row.risk_level),
            expected_return=float(row.expected_return_midpoint or 0.0),
            keywords=tuple(row.keyword_patterns or ()),
            description=row.description,
        )


class Taxonomy:
    """Immutable lookup over taxonomy entries."""

    def __init__(self, entries: Sequence[TaxonomyEntry]):
        self._entries = list(entries)
        self._index: Dict[Tuple[str, str], TaxonomyEntry] = {
            (e.asset_class.value, e.subclass_code): e for e in self._entries
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @property
    def entries(self) -> List[TaxonomyEntry]:
        return list(self._entries)

    def lookup(self, asset_class: str, subclass_code: str) -> Optional[TaxonomyEntry]:
        """Find the entry for a pair, or None when the pair is not valid."""
        key = asset_class.value if isinstance(asset_class, AssetClass) else str(asset_class)
        return self._index.get((key.lower(), str(subclass_code).lower()))

    def by_class(self) -> Dict[AssetClass, List[TaxonomyEntry]]:
        grouped: Dict[AssetClass, List[TaxonomyEntry]] = {}
        for entry in self._entries:
            grouped.setdefault(entry.asset_class, []).append(entry)
        return grouped


def load_taxonomy(db: Session) -> Taxonomy:
    """
    Load the active taxonomy.

    Inactive rows are never returned.

    Raises:
        TaxonomyUnavailableError: If no row is active or the table cannot be read.
    """
    try:
        rows = (
            db.query(AssetSubclassMapping)
            .filter(AssetSubclassMapping.is_active.is_(True))
            .order_by(AssetSubclassMapping.sort_order)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error("Failed to load asset taxonomy", error=str(e))
        raise TaxonomyUnavailableError("Failed to load asset taxonomy") from e

    if not rows:
        logger.error("No active taxonomy rows")
        raise TaxonomyUnavailableError()

    return Taxonomy([TaxonomyEntry.from_model(row) for row in rows])


def read_taxonomy_file(path: Path = DEFAULT_TAXONOMY_PATH) -> List[AssetSubclassMapping]:
    """Build taxonomy rows from a YAML file keyed by asset class."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    rows = []
    sort_order = 0
    for class_name, subclasses in data.items():
        asset_class = AssetClass(class_name)
        for item in subclasses or []:
            sort_order += 1
            rows.append(AssetSubclassMapping(
                asset_class=asset_class,
                subclass_code=item["code"],
                display_name=item["name"],
                risk_level=RiskLevel(item["risk_level"]),
                expected_return_range=item.get("expected_return_range"),
                expected_return_midpoint=float(item["expected_return"]),
                keyword_patterns=[str(k).lower() for k in item.get("keywords") or []],
                description=item.get("description"),
                sort_order=sort_order,
                is_active=item.get("is_active", True),
            ))
    return rows


def seed_default_taxonomy(db: Session, path: Path = DEFAULT_TAXONOMY_PATH) -> int:
    """
    Insert the default taxonomy when the table is empty.

    Returns:
        Number of rows inserted.
    """
    if db.query(AssetSubclassMapping).count():
        return 0
    rows = read_taxonomy_file(path)
    db.add_all(rows)
    db.commit()
    logger.info("Seeded asset taxonomy", path=str(path), subclasses=len(rows))
    return len(rows)
