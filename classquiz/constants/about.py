"""Static metadata describing ClassQuiz."""

APP_NAME = "ClassQuiz"
APP_VERSION = "0.2"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ClassQuiz is a classroom quiz service built with FastAPI. Teachers author questions, "
    "organize students into classes and launch timed sessions; students join from the web "
    "and answer randomly drawn questions with instant feedback."
)
