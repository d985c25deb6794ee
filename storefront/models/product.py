from pydantic import Field
from pydantic.alias_generators import to_camel
from typing import List, Optional

from models.user import CamelModel


class ProductFilter(CamelModel):
    category_ids: List[int] = []
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    condition_filter: Optional[str] = None
    price_sort: Optional[str] = None
    time_filter: Optional[str] = None
    page: Optional[int] = Field(None, ge=0)
    size: Optional[int] = Field(None, ge=1)

    def to_query(self) -> List[tuple]:
        params = [("categoryIds", str(cid)) for cid in self.category_ids]
        for name in ("min_price", "max_price", "condition_filter", "price_sort", "time_filter", "page", "size"):
            value = getattr(self, name)
            if value is None or value == "":
                continue
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            params.append((to_camel(name), str(value)))
        return params


class ProductListParams(CamelModel):
    category: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    search: Optional[str] = None

    def to_query(self) -> List[tuple]:
        return [(k, str(v)) for k, v in self.model_dump(exclude_none=True).items()]
