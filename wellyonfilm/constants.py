# Submission constraints
SUBMISSION_LIMITS = {
    "max_per_month": 3,
    "min_image_dimension": 1500,  # px on longest edge
    "max_image_dimension": 8000,  # px on longest edge
    "max_file_size_mb": 50,
    "accepted_formats": ("image/jpeg", "image/png", "image/tiff"),
}

MAX_TAGS = 5

# Fixed categories (permanent, one photo featured from each)
FIXED_CATEGORIES = [
    {"id": "love", "name": "Love", "description": "Moments of connection and affection"},
    {"id": "nature", "name": "Nature", "description": "Wellington's natural beauty"},
    {"id": "human", "name": "Human", "description": "People and portraits"},
    {"id": "art", "name": "Art", "description": "Creative and artistic expressions"},
    {"id": "architecture", "name": "Architecture", "description": "Buildings and urban structures"},
]
FIXED_CATEGORY_IDS = tuple(c["id"] for c in FIXED_CATEGORIES)

# Featured counts for the print magazine
FEATURED_COUNT = {
    "fixed": 5,  # 1 per sub-category
    "rotating": 5,
    "open": 5,
    "total": 15,
}

MAX_JUDGES_PER_MONTH = 3

COMMENT_MAX_LENGTH = 500

THUMBNAIL_MAX_DIMENSION = 400

DELETED_USER_NAME = "Deleted User"
