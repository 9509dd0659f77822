from typing import Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.domain.errors import NotFoundError, ValidationError
from app.domain.models import Category, Product
from .schemas import CategoryCreate, ProductCreate, ProductUpdate


class CategoryService:
    def __init__(self, db: Session):
        self.db = db

    def list(self):
        return list(self.db.scalars(select(Category).order_by(Category.name)))

    def get(self, category_id: int) -> Category:
        category = self.db.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    def create(self, data: CategoryCreate) -> Category:
        obj = Category(**data.model_dump())
        self.db.add(obj)
        self._commit_unique_name(data.name)
        self.db.refresh(obj)
        return obj

    def update(self, category_id: int, data: CategoryCreate) -> Category:
        category = self.get(category_id)
        category.name = data.name
        category.description = data.description
        category.image_url = data.image_url
        self._commit_unique_name(data.name)
        self.db.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        self.db.delete(self.get(category_id))
        self.db.commit()

    def _commit_unique_name(self, name: str) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError("Invalid category", [
                {"field": "name", "message": f"Category '{name}' already exists"}
            ])


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def list(self, category_id: Optional[int] = None, search: Optional[str] = None, active_only: bool = False):
        stmt = select(Product).order_by(Product.created_at.desc(), Product.id.desc())
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)
        if search:
            stmt = stmt.where(Product.name.ilike(f"%{search}%"))
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        return list(self.db.scalars(stmt))

    def get(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return product

    def create(self, data: ProductCreate) -> Product:
        self._check_category(data.category_id)
        obj = Product(**data.model_dump())
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def update(self, product_id: int, data: ProductUpdate) -> Product:
        product = self.get(product_id)
        changes = data.model_dump(exclude_unset=True)
        if "category_id" in changes:
            self._check_category(changes["category_id"])
        for field, value in changes.items():
            setattr(product, field, value)
        self.db.commit()
        self.db.refresh(product)
        return product

    def delete(self, product_id: int) -> None:
        self.db.delete(self.get(product_id))
        self.db.commit()

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None and self.db.get(Category, category_id) is None:
            raise ValidationError("Invalid product", [
                {"field": "category_id", "message": f"Category {category_id} does not exist"}
            ])
