"""Pure exam constants: answer choices, category defaults, score bands. No UI."""
# Score = round(correct / total * 100); bands color the score in history and ranking views

CHOICES = ("A", "B", "C", "D", "E")
DEFAULT_MAIN_CATEGORY = "Non Tag"
DEFAULT_SUB_CATEGORY = "Umum"
MAIN_CATEGORIES = ("TWK", "TIU", "TKP")
DEFAULT_DURATION_MINUTES = 110
MAX_QUESTIONS_PER_PACKAGE = 200
HIGH_SCORE = 80
MEDIUM_SCORE = 60
MIN_PAYMENT_TIMEOUT_MINUTES = 5
MAX_PAYMENT_TIMEOUT_MINUTES = 60
MIN_PASSWORD_LENGTH = 6
