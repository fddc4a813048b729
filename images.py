"""
Product image URLs

Resolves stored image paths against the image host, and rewrites product
image paths to the `/products/{category}/{name}/{n}{ext}` layout served by
the backend.
"""
import logging
import os
import re
from typing import List, Optional

from config import IMAGE_BASE_URL, PLACEHOLDER_URL
from database import PRODUCTS
from schemas import Product

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".jpg"
IMAGES_PER_PRODUCT = 3


def url_slug(name: str) -> str:
    return re.sub(r"\s+", "+", name)


def get_image_url(path: Optional[str], base_url: str = IMAGE_BASE_URL) -> str:
    if not path:
        return f"{base_url}/placeholder.jpg"
    if path.startswith("http://") or path.startswith("https://"):
        return path
    if path.startswith("/"):
        return f"{base_url}{path}"
    return f"{base_url}/{path}"


def get_fallback_image_url(size: str = "800x800") -> str:
    return f"https://placehold.co/{size}/6366f1/ffffff?text=Image+Not+Found"


def get_product_image_url(product: Product, index: int = 0) -> str:
    if 0 <= index < len(product.images):
        return get_image_url(product.images[index])
    return f"{PLACEHOLDER_URL}?text={url_slug(product.name)}"


def find_image_extension(products_dir: Optional[str], category: str, name: str) -> str:
    """Extension of the `1.*` image in the product's local folder, if there is one."""
    if products_dir:
        folder = os.path.join(products_dir, category, name)
        if os.path.isdir(folder):
            for filename in sorted(os.listdir(folder)):
                if filename.startswith("1."):
                    return os.path.splitext(filename)[1]
    return DEFAULT_EXTENSION


def product_image_paths(
    name: str,
    category: str,
    count: int = IMAGES_PER_PRODUCT,
    products_dir: Optional[str] = None,
    base_url: str = "/products",
) -> List[str]:
    extension = find_image_extension(products_dir, category, name)
    slug = url_slug(name)
    return [f"{base_url}/{category}/{slug}/{n}{extension}" for n in range(1, count + 1)]


def migrate_image_paths(db, products_dir: Optional[str] = None, base_url: str = "/products") -> int:
    """Point every product's images at its served folder; returns how many changed."""
    modified = 0
    for doc in db[PRODUCTS].find({}, {"name": 1, "category": 1, "images": 1}):
        if not doc.get("name") or not doc.get("category"):
            logger.warning("Skipping product %s without name or category", doc["_id"])
            continue
        images = product_image_paths(doc["name"], doc["category"], products_dir=products_dir, base_url=base_url)
        if doc.get("images") == images:
            continue
        db[PRODUCTS].update_one({"_id": doc["_id"]}, {"$set": {"images": images}})
        modified += 1
    logger.info("Updated image paths for %d products", modified)
    return modified


if __name__ == "__main__":
    import argparse

    import database

    parser = argparse.ArgumentParser(description="Rewrite product image paths")
    parser.add_argument("--products-dir", help="Local folder holding Products/{category}/{name}/ images")
    parser.add_argument("--base-url", default="/products")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    if database.db is None:
        raise SystemExit("DATABASE_URL is not set")
    migrate_image_paths(database.db, products_dir=args.products_dir, base_url=args.base_url)
