# Loads environment variables and defines configuration constants for the analytics tools.
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Data Source ---
# Fully qualified tables the tools are allowed to query
ANALYTICS_PROJECT_ID = os.getenv("ANALYTICS_PROJECT_ID", "exemplary-terra-463404-m1")
ANALYTICS_DATASET_ID = os.getenv("ANALYTICS_DATASET_ID", "linktree_analytics")
BLENDED_SUMMARY_TABLE_ID = os.getenv("BLENDED_SUMMARY_TABLE_ID", "blended_summary")
IMPRESSION_SHARE_TABLE_ID = os.getenv("IMPRESSION_SHARE_TABLE_ID", "impression_share_report")

# --- Webhook ---
# The n8n workflow that executes the assembled SQL and answers with its result as text
WEBHOOK_URL = os.getenv("ANALYTICS_WEBHOOK_URL", "")
WEBHOOK_TIMEOUT_SECONDS = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "300"))
USER_AGENT_PREFIX = os.getenv("USER_AGENT_PREFIX", "MCP-Analytics-Tool")

# --- Server Settings ---
MCP_SERVER_NAME = os.getenv("MCP_SERVER_NAME", "marketing-analytics")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
