STORAGE_PRODUCTS = "products"
STORAGE_ORDERS = "orders"
STORAGE_SITE_SETTINGS = "siteSettings"
STORAGE_LATEST_ORDER = "latestOrderId"
STORAGE_CART = "cart"

ORDER_PROCESSING = "Processing"
ORDER_SHIPPED = "Shipped"
ORDER_DELIVERED = "Delivered"
ORDER_CANCELLED = "Cancelled"

ORDER_STATUSES = (ORDER_PROCESSING, ORDER_SHIPPED, ORDER_DELIVERED, ORDER_CANCELLED)

# tracking page progress bar: 0 = unknown / cancelled
ORDER_STATUS_STEPS = {
    ORDER_PROCESSING: 1,
    ORDER_SHIPPED: 2,
    ORDER_DELIVERED: 3,
}

AVAILABILITY_ALL = "all"
AVAILABILITY_AVAILABLE = "available"
AVAILABILITY_SOLD_OUT = "soldout"

CATEGORY_ALL = "All"

DEFAULT_CATEGORIES = [
    {"id": 1, "name": "Tote", "slug": "tote", "description": "Spacious everyday tote bags"},
    {"id": 2, "name": "Crossbody", "slug": "crossbody", "description": "Hands-free crossbody bags"},
    {"id": 3, "name": "Bucket", "slug": "bucket", "description": "Drawstring bucket bags"},
    {"id": 4, "name": "Clutch", "slug": "clutch", "description": "Evening clutches"},
    {"id": 5, "name": "Shoulder", "slug": "shoulder", "description": "Shoulder bags"},
    {"id": 6, "name": "Handbag", "slug": "handbag", "description": "Structured handbags"},
]

DEFAULT_SITE_SETTINGS = {
    "heroImage": "https://images.unsplash.com/photo-1631125915902-d8abe9225ff2?w=1200&q=80",
    "heroTitle": "Handcrafted Crochet Bags",
    "heroSubtitle": "Made with love, carried with pride",
    "companyName": "Cupid Crochy",
    "companyEmail": "hello@cupidcrochy.com",
    "companyPhone": "+880 1234 567890",
    "companyAddress": "123 Craft Street, Dhaka, Bangladesh",
    "socialLinks": {
        "facebook": "https://facebook.com",
        "instagram": "https://instagram.com",
        "twitter": "https://twitter.com",
    },
}

REQUIRED_CHECKOUT_FIELDS = ("email", "name", "address", "phone")
