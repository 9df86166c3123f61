from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple
import time
from uuid import uuid4
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from ..db.session import get_session
from ..errors import NotFoundError, StoreError, ValidationError
from ..models.product import PRODUCT_CONDITIONS, Product
from ..utils.pagination import normalize_paging, page_offset
from ..utils.dto import to_product_dto
from .logging import log_event


SORTABLE_FIELDS = {
    "created_at": Product.created_at,
    "price": Product.price,
    "name": Product.name,
}
EDITABLE_FIELDS = (
    "name",
    "description",
    "price",
    "original_price",
    "brand",
    "model",
    "storage",
    "color",
    "condition",
    "images",
    "specifications",
    "stock_quantity",
    "category",
)
REQUIRED_FIELDS = ("name", "price", "brand", "model")


def _parse_price(value, field: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be numeric", field=field) from None
    if not price.is_finite() or price < 0:
        raise ValidationError(f"{field} must be >= 0", field=field)
    return price


def _clean_product_fields(data: Dict, *, partial: bool) -> Dict:
    values = {k: data[k] for k in EDITABLE_FIELDS if k in data}
    if not partial:
        for key in REQUIRED_FIELDS:
            if values.get(key) in (None, ""):
                raise ValidationError(f"{key} is required", field=key)
    for key in ("price", "original_price"):
        if key in values:
            values[key] = _parse_price(values[key], key)
    if "price" in values and values["price"] is None:
        raise ValidationError("price is required", field="price")
    if "condition" in values and values["condition"] not in PRODUCT_CONDITIONS:
        raise ValidationError("condition must be one of new, used, refurbished", field="condition")
    if "stock_quantity" in values:
        try:
            stock = int(values["stock_quantity"])
        except (TypeError, ValueError):
            raise ValidationError("stock_quantity must be an integer", field="stock_quantity") from None
        if stock < 0:
            raise ValidationError("stock_quantity must be >= 0", field="stock_quantity")
        values["stock_quantity"] = stock
    if "images" in values and not isinstance(values["images"] or [], list):
        raise ValidationError("images must be a list of URLs", field="images")
    if "specifications" in values and not isinstance(values["specifications"] or {}, dict):
        raise ValidationError("specifications must be an object", field="specifications")
    return values


class CatalogService:
    """Product browsing plus the admin product CRUD.

    Listing results are cached in-process for a short TTL and a bounded
    number of entries. Admin writes clear the cache; order code that moves
    stock should call ``invalidate_cache`` too.
    """

    def __init__(
        self,
        session_factory=get_session,
        cache_ttl_seconds: int = 60,
        cache_max_entries: int = 256,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        # naive in-process cache: key -> (ts, result)
        self._cache: Dict[Tuple, Tuple[float, Dict]] = {}
        self._cache_ttl_seconds = cache_ttl_seconds
        self._cache_max_entries = cache_max_entries
        self._clock = clock

    def _remember(self, key: Tuple, now: float, result: Dict) -> None:
        expired = [k for k, (ts, _) in self._cache.items() if now - ts > self._cache_ttl_seconds]
        for k in expired:
            del self._cache[k]
        while self._cache and len(self._cache) >= self._cache_max_entries:
            # dicts keep insertion order, so the first key is the oldest entry
            del self._cache[next(iter(self._cache))]
        self._cache[key] = (now, result)

    def list_products(
        self,
        *,
        search: Optional[str] = None,
        brand: Optional[str] = None,
        category: Optional[str] = None,
        condition: Optional[str] = None,
        min_price=None,
        max_price=None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        """Return dict: { items: [ProductDTO], page, page_size, total }"""
        p, ps = normalize_paging(page, page_size)
        low = _parse_price(min_price, "min_price")
        high = _parse_price(max_price, "max_price")
        sort_column = SORTABLE_FIELDS.get(sort_by)
        if sort_column is None:
            raise ValidationError(f"Cannot sort by {sort_by}", field="sort_by")
        cache_key = (search or "", brand or "", category or "", condition or "", low, high, sort_by, sort_order, p, ps)
        now = self._clock()
        cached = self._cache.get(cache_key)
        if cached and now - cached[0] <= self._cache_ttl_seconds:
            return cached[1]

        try:
            with self._session_factory() as session:
                q = session.query(Product)
                if search:
                    like = f"%{search}%"
                    q = q.filter(or_(Product.name.ilike(like), Product.description.ilike(like)))
                if brand:
                    q = q.filter(Product.brand == brand)
                if category:
                    q = q.filter(Product.category == category)
                if condition:
                    q = q.filter(Product.condition == condition)
                if low is not None:
                    q = q.filter(Product.price >= low)
                if high is not None:
                    q = q.filter(Product.price <= high)
                total = q.count()
                ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()
                rows = q.order_by(ordering, Product.id).offset(page_offset(p, ps)).limit(ps).all()
                items = [to_product_dto(r) for r in rows]
        except SQLAlchemyError as exc:
            raise StoreError("list_products") from exc
        result = {"items": items, "page": p, "page_size": ps, "total": total}
        self._remember(cache_key, now, result)
        return result

    def get_product(self, product_id: str) -> Dict:
        """Return ProductDTO for given product id."""
        try:
            with self._session_factory() as session:
                r = session.query(Product).filter(Product.id == product_id).first()
                if r is None:
                    raise NotFoundError("product", product_id)
                return to_product_dto(r)
        except SQLAlchemyError as exc:
            raise StoreError("get_product") from exc

    def list_brands(self) -> List[str]:
        try:
            with self._session_factory() as session:
                rows = session.query(Product.brand).distinct().order_by(Product.brand).all()
        except SQLAlchemyError as exc:
            raise StoreError("list_brands") from exc
        return [r[0] for r in rows]

    def create_product(self, data: Dict) -> Dict:
        values = _clean_product_fields(data or {}, partial=False)
        try:
            with self._session_factory() as session:
                prod = Product(id=str(uuid4()), **values)
                session.add(prod)
                session.flush()
                session.refresh(prod)
                dto = to_product_dto(prod)
        except SQLAlchemyError as exc:
            raise StoreError("create_product") from exc
        self.invalidate_cache()
        log_event("info", "product.created", product_id=dto["id"], name=dto["name"])
        return dto

    def update_product(self, product_id: str, data: Dict) -> Dict:
        values = _clean_product_fields(data or {}, partial=True)
        try:
            with self._session_factory() as session:
                prod = session.query(Product).filter(Product.id == product_id).first()
                if prod is None:
                    raise NotFoundError("product", product_id)
                for key, value in values.items():
                    setattr(prod, key, value)
                session.flush()
                session.refresh(prod)
                dto = to_product_dto(prod)
        except SQLAlchemyError as exc:
            raise StoreError("update_product") from exc
        self.invalidate_cache()
        log_event("info", "product.updated", product_id=product_id, fields=sorted(values))
        return dto

    def delete_product(self, product_id: str) -> bool:
        try:
            with self._session_factory() as session:
                prod = session.query(Product).filter(Product.id == product_id).first()
                if prod is None:
                    return False
                session.delete(prod)
        except SQLAlchemyError as exc:
            raise StoreError("delete_product") from exc
        self.invalidate_cache()
        log_event("info", "product.deleted", product_id=product_id)
        return True

    def invalidate_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)
