"""
Data Model for Catalog Consolidation

Immutable snapshots of Shopify catalog entries plus the plan/outcome values
handed between the grouping, planning, execution and reporting stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")

STATUS_ACTIVE = "ACTIVE"
STATUS_DRAFT = "DRAFT"
STATUS_ARCHIVED = "ARCHIVED"


def parse_price(raw: Any) -> Optional[Decimal]:
    """Parse a money string from the Admin API ("24.99") into a Decimal."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def format_price(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return format(value.quantize(Decimal("0.01")), "f")


def _nodes(connection: Optional[Dict]) -> List[Dict]:
    """Accept both `{nodes: [...]}` and `{edges: [{node: ...}]}` connections."""
    if not connection:
        return []
    if "nodes" in connection:
        return list(connection["nodes"] or [])
    return [edge["node"] for edge in connection.get("edges") or []]


@dataclass(frozen=True)
class VariantRecord:
    id: str
    title: str
    sku: str
    price: Optional[Decimal]
    compare_at_price: Optional[Decimal]
    inventory_quantity: int
    option_values: Tuple[str, ...] = ()

    @classmethod
    def from_node(cls, node: Dict) -> "VariantRecord":
        selected = node.get("selectedOptions") or []
        return cls(
            id=node["id"],
            title=node.get("title") or "",
            sku=node.get("sku") or "",
            price=parse_price(node.get("price")),
            compare_at_price=parse_price(node.get("compareAtPrice")),
            inventory_quantity=int(node.get("inventoryQuantity") or 0),
            option_values=tuple(opt.get("value", "") for opt in selected),
        )


@dataclass(frozen=True)
class ProductOption:
    id: str
    name: str
    values: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CatalogEntry:
    """One catalog-visible product as loaded from the Catalog Service."""
    id: str
    title: str
    handle: str
    vendor: str
    product_type: str
    status: str
    total_inventory: int
    variants: Tuple[VariantRecord, ...] = ()
    options: Tuple[ProductOption, ...] = ()
    images: Tuple[str, ...] = ()

    @classmethod
    def from_node(cls, node: Dict) -> "CatalogEntry":
        """Build an entry from an Admin GraphQL `Product` node."""
        options = tuple(
            ProductOption(
                id=opt.get("id", ""),
                name=opt.get("name", ""),
                values=tuple(opt.get("values") or ()),
            )
            for opt in node.get("options") or []
        )
        images: List[str] = []
        featured = (node.get("featuredImage") or {}).get("url")
        if featured:
            images.append(featured)
        for image in _nodes(node.get("images")):
            url = image.get("url")
            if url and url not in images:
                images.append(url)
        return cls(
            id=node["id"],
            title=node.get("title") or "",
            handle=node.get("handle") or "",
            vendor=node.get("vendor") or "",
            product_type=node.get("productType") or "",
            status=(node.get("status") or "").upper(),
            total_inventory=max(0, int(node.get("totalInventory") or 0)),
            variants=tuple(VariantRecord.from_node(v) for v in _nodes(node.get("variants"))),
            options=options,
            images=tuple(images),
        )

    @property
    def is_archived(self) -> bool:
        return self.status == STATUS_ARCHIVED

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def min_price(self) -> Optional[Decimal]:
        prices = [v.price for v in self.variants if v.price is not None]
        return min(prices) if prices else None

    @property
    def first_option(self) -> Optional[ProductOption]:
        return self.options[0] if self.options else None


@dataclass(frozen=True)
class SizeToken:
    """A size/flavor token extracted from a title plus the residual base name."""
    base_name: str
    token: str
    rule: str
    option_name: str
    label_key: str

    def reinsert(self) -> str:
        """Put the token back at its original (trailing) position."""
        return f"{self.base_name} {self.token}"


@dataclass(frozen=True)
class GroupMember:
    entry: CatalogEntry
    size: Optional[SizeToken]  # None for a clean (token-less) anchor

    @property
    def label(self) -> str:
        return self.size.token if self.size else ""


@dataclass
class MergeGroup:
    """Two or more entries sharing `vendor|baseName[|productType]`."""
    key: str
    base_name: str
    vendor: str
    product_type: str
    members: List[GroupMember] = field(default_factory=list)
    anchors: List[GroupMember] = field(default_factory=list)
    primary_id: Optional[str] = None  # pinned by a curated family

    @property
    def size(self) -> int:
        return len(self.members) + len(self.anchors)

    @property
    def entries(self) -> List[CatalogEntry]:
        return [m.entry for m in self.anchors] + [m.entry for m in self.members]


class StepKind(str, Enum):
    RENAME_OPTION = "rename_option"
    UPDATE_PRIMARY_VARIANT = "update_primary_variant"
    CREATE_VARIANT = "create_variant"
    ARCHIVE_ENTRY = "archive_entry"
    RETITLE_PRIMARY = "retitle_primary"


@dataclass(frozen=True)
class MergeStep:
    kind: StepKind
    entry_id: str
    description: str
    payload: Dict[str, Any] = field(default_factory=dict)
    requires: Tuple[int, ...] = ()  # indexes of earlier steps in the same plan
    noop: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "entry_id": self.entry_id,
            "description": self.description,
            "payload": dict(self.payload),
            "requires": list(self.requires),
            "noop": self.noop,
        }


@dataclass(frozen=True)
class MergePlan:
    """Side-effect-free, ordered description of every mutation for one group."""
    group_key: str
    base_name: str
    option_name: str
    primary_id: str
    policy: str
    steps: Tuple[MergeStep, ...]

    def steps_of(self, kind: StepKind) -> List[MergeStep]:
        return [s for s in self.steps if s.kind == kind]


@dataclass(frozen=True)
class PlanRejection:
    group_key: str
    reason: str


class OutcomeStatus(str, Enum):
    PLANNED = "planned"  # dry-run
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class MergeOutcome:
    group_key: str
    step_index: int
    kind: StepKind
    entry_id: str
    status: OutcomeStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.SUCCEEDED, OutcomeStatus.PLANNED)


class ErrorKind(str, Enum):
    TRANSPORT = "transport"    # timeout, connection, non-200
    GRAPHQL = "graphql"        # top-level `errors` in the response
    VALIDATION = "validation"  # mutation `userErrors`


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Outcome of one Catalog Service call: a value, or a classified failure."""
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    detail: str = ""

    @classmethod
    def success(cls, value: T) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str) -> "ServiceResult[T]":
        return cls(error_kind=kind, detail=detail)

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def describe(self) -> str:
        if self.ok:
            return "ok"
        return f"{self.error_kind.value}: {self.detail}"
