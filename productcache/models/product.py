from pydantic import BaseModel, ConfigDict


class Product(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    price: float
    category: str = "General"
    stock: int = 0
    size_bytes: int | None = None


class ProductSummary(BaseModel):
    id: str
    name: str


class NewProduct(BaseModel):
    name: str
    price: float
    category: str = "General"
    stock: int = 0
    size_bytes: int | None = None


class ProductPatch(BaseModel):
    name: str | None = None
    price: float | None = None
    category: str | None = None
    stock: int | None = None

    def changes(self) -> dict:
        """Return only the fields the caller actually set."""
        return self.model_dump(exclude_unset=True, exclude_none=True)
