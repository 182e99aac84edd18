"""User-facing messages surfaced inline by the service and API layers."""

AUTH_REQUIRED: str = "Authentication required."
TEACHER_REQUIRED: str = "This page is only available to teachers."
GENERIC_BACKEND_ERROR: str = "Something went wrong while talking to the server. Please try again."

EMAIL_REQUIRED: str = "Please enter your email address"
PASSWORD_REQUIRED: str = "Please enter your password"
PASSWORD_TOO_SHORT: str = "Password must be at least 6 characters"
DEV_LOGIN_DISABLED: str = "Development login is disabled."
MAGIC_LINK_SENT: str = "Check your email for the sign-in link!"

CLASS_NAME_REQUIRED: str = "Please enter a class name"
CLASS_EMAILS_REQUIRED: str = "Please add at least one student email"
CLASS_MEMBER_EMAILS_REQUIRED: str = "Please add at least one email"
CLASS_NOT_FOUND: str = "Class not found or access denied"
CLASS_MEMBERS_PARTIAL: str = "Class created but failed to add some members: {error}"

QUESTION_FIELDS_REQUIRED: str = "Please fill in title, content, and select a course"
QUESTION_TOO_FEW_ANSWERS: str = "Please provide at least {count} answers"
QUESTION_TOO_MANY_ANSWERS: str = "A question can have at most {count} answers"
QUESTION_NO_CORRECT_ANSWER: str = "Please mark at least one answer as correct"
QUESTION_IMAGE_UPLOAD_FAILED: str = "Failed to upload image: {error}"
QUESTION_ANSWERS_FAILED: str = "Question created but its answers could not be saved: {error}"

SESSION_NAME_AND_CLASS_REQUIRED: str = "Please provide a session name and select a class"
SESSION_SCOPE_REQUIRED: str = "Please select either a course, at least one tag, or specific questions"
SESSION_NOT_FOUND: str = "Session not found or access denied"
SESSION_EXPIRED: str = "This session has expired."
SESSION_NO_QUESTIONS: str = "No questions are available for this session yet."
SESSION_ANSWER_REQUIRED: str = "Please choose an answer first."
SESSION_NO_CURRENT_QUESTION: str = "There is no question to answer right now."
SESSION_UNKNOWN_ANSWER: str = "That answer does not belong to the current question."

IMAGE_INVALID_TYPE: str = "Please upload a valid image file (JPEG, PNG, WebP, or GIF)"
IMAGE_TOO_LARGE: str = "Image file size must be less than 10MB"
IMAGE_DECODE_FAILED: str = "Failed to load image"
IMAGE_ENCODE_FAILED: str = "Failed to process image"
IMAGE_DATA_INVALID: str = "Image data must be base64 encoded."

DASHBOARD_SESSIONS_FAILED: str = "Failed to load sessions"
DASHBOARD_CLASSES_FAILED: str = "Failed to load classes"
DASHBOARD_QUESTIONS_FAILED: str = "Failed to load questions"
DASHBOARD_CATALOG_FAILED: str = "Failed to load courses and tags"
