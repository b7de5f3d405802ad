"""Runtime settings read from the environment (.env is loaded on import)."""
import os

from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Registering with this email grants the admin dashboard
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@skdcpns.com")

# "reset": revisiting a question restarts its timer; "accumulate": time adds up
QUESTION_TIMER_POLICY = os.getenv("QUESTION_TIMER_POLICY", "reset")

FORCED_FINISH_DELAY_SECONDS = float(os.getenv("FORCED_FINISH_DELAY_SECONDS", "2"))
DEFAULT_PAYMENT_TIMEOUT_MINUTES = int(os.getenv("DEFAULT_PAYMENT_TIMEOUT_MINUTES", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
