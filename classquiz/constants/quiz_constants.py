"""Quiz-related constants shared across the service and server layers."""

MIN_ANSWERS_PER_QUESTION: int = 2
MAX_ANSWERS_PER_QUESTION: int = 8

IMAGE_MAX_WIDTH: int = 800
IMAGE_MAX_HEIGHT: int = 600
IMAGE_QUALITY: float = 0.8
IMAGE_MAX_BYTES: int = 10 * 1024 * 1024
IMAGE_ALLOWED_TYPES: tuple[str, ...] = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
)
IMAGE_OUTPUT_FORMAT: str = "WEBP"
IMAGE_OUTPUT_EXTENSION: str = "webp"
IMAGE_OUTPUT_CONTENT_TYPE: str = "image/webp"
IMAGE_BUCKET: str = "question-images"

SIMULATED_TEACHER_EMAILS: tuple[str, ...] = (
    "teacher1@school.edu",
    "teacher2@school.edu",
    "admin@school.edu",
)

NO_TIME_LIMIT_LABEL: str = "no limit"
EXPIRED_LABEL: str = "Expired"
