import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or (
        'dev-secret-key-change-in-production'
    )
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or (
        'sqlite:///eselling.db'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_FILE = os.environ.get('LOG_FILE', 'app.log')

    # Uploaded receipts, seller logos/ids, product images, payout QR codes.
    # Relative to the static folder.
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', 'uploads')
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024
    ALLOWED_IMAGE_EXTENSIONS = ('jpg', 'jpeg', 'png', 'gif', 'webp')

    # Pagination configuration
    ITEMS_PER_PAGE = 20

    # Re-samples of the order number suffix before checkout gives up
    ORDER_NUMBER_MAX_ATTEMPTS = int(
        os.environ.get('ORDER_NUMBER_MAX_ATTEMPTS', '10')
    )

    # Public product reads (seconds)
    PRODUCT_CACHE_MAX_AGE = 300

    ADMIN_SEED_PASSWORD = os.environ.get('ADMIN_SEED_PASSWORD', 'admin123')
