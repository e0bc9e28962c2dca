"""Pure exam constants shared by the model, the engine and the UI. No UI."""
# Question types: single choice, multiple choice, free text, matching pairs
# Time limits are authored as "mm:ss"

QUESTION_TYPES = ("single", "multiple", "text", "matching")
QUESTION_TYPE_LABELS = {
    "single": "Single choice",
    "multiple": "Multiple choice",
    "text": "Free text",
    "matching": "Matching pairs",
}

DEFAULT_TIME_LIMIT = "30:00"
DEFAULT_PASSING_SCORE = 70
DEFAULT_POINTS = 1
DEFAULT_PAIR_POINTS = 1

MIN_CHOICE_OPTIONS = 2
MIN_MATCHING_PAIRS = 2

MAX_IMAGE_BYTES = 2 * 1024 * 1024
MIN_PASSWORD_LENGTH = 6

ROLE_ADMIN = "admin"
ROLE_USER = "user"

# Site settings (single row in the settings table); stored values override these
SETTINGS_ROW_ID = 1
DEFAULT_SETTINGS = {
    "site_name": "Exam Portal",
    "site_description": "Online testing system",
    "welcome_message": "Welcome!",
    "footer_text": "© Exam Portal. All rights reserved.",
    "contact_email": "info@example.com",
    "terms_and_conditions": "",
    "privacy_policy": "",
}
