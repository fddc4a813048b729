"""
Storefront settings

Everything is read from the environment with a local-development default.
"""
import os

# Server
SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", 7))

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "ecommerce")

# Client
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8080/api")
IMAGE_BASE_URL = os.getenv("IMAGE_BASE_URL", "http://localhost:8080")
STORAGE_PATH = os.path.expanduser(
    os.getenv("STOREFRONT_STORAGE_PATH", "~/.storefront/storage.json")
)
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 10))

# Local storage keys
STORAGE_KEYS = {
    "CART": "ecommerce-cart",
    "WISHLIST": "ecommerce-wishlist",
    "ACCESS_TOKEN": "accessToken",
    "REFRESH_TOKEN": "refreshToken",
    "TOKEN_EXPIRES": "tokenExpiresAt",
    "USER_DATA": "userData",
    "REMEMBER_ME": "rememberMeData",
    "SESSION_TIMEOUT": "sessionTimeout",
}

# Session timings, in seconds
REFRESH_THRESHOLD = 5 * 60
SESSION_TIMEOUT = 15 * 60
REMEMBER_ME_DURATION = 30 * 24 * 60 * 60
AUTO_REFRESH_INTERVAL = 4 * 60
SESSION_WARNING_TIME = 2 * 60

# Checkout
FREE_SHIPPING_THRESHOLD = 50.0
SHIPPING_FEE = 9.99
TAX_RATE = 0.08

# Images
PLACEHOLDER_URL = "https://placehold.co/800x800/6366f1/ffffff"
