"""
Centralized configuration settings for the HTS duty rate engine.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value) if value else default


class Config:
    """Main configuration class containing all engine settings."""

    # Base paths
    BASE_DIR = Path(__file__).resolve().parents[3]
    DATA_DIR = _env_path('HTS_DATA_DIR', BASE_DIR / "Data")
    LOGS_DIR = _env_path('HTS_LOGS_DIR', BASE_DIR / "logs")
    CACHE_DIR = _env_path('HTS_CACHE_DIR', BASE_DIR / "cache")

    # Reference document and persistent store
    REFERENCE_WORKBOOK_PATH = _env_path('HTS_WORKBOOK_PATH', DATA_DIR / "hts_2025.xlsx")
    CACHE_DB_PATH = _env_path('HTS_CACHE_DB', CACHE_DIR / "duty_cache.db")
    OVERRIDE_SEED_FILE = _env_path('HTS_OVERRIDE_SEED', DATA_DIR / "overrides.json")

    # OpenAI Configuration
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_CHAT_MODEL = os.getenv('OPENAI_CHAT_MODEL', "gpt-4o-mini")
    OPENAI_MAX_TOKENS = 500

    # AI estimator settings
    AI_TIMEOUT_SECONDS = float(os.getenv('AI_TIMEOUT_SECONDS', '30'))
    HIGH_CONFIDENCE_THRESHOLD = 0.80
    MEDIUM_CONFIDENCE_THRESHOLD = 0.50
    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    # Reference search settings
    CODE_COLUMNS = 3
    ROW_LOOKAHEAD = 2
    MAX_RATE_CELL_LENGTH = 100
    # Zero-based columns of the schedule layout: heading, stat suffix,
    # description, unit of quantity, general rate, special rate, other
    UNIT_COLUMN = 3
    SPECIAL_RATE_COLUMN = 5

    # System Settings
    BATCH_CONCURRENCY = int(os.getenv('BATCH_CONCURRENCY', '8'))
    LOG_ROTATION = "500 MB"
    LOG_RETENTION_DAYS = "30 days"
    LOG_COMPRESSION = "zip"
    MAIN_LOG_FILE = "hts_duty.log"
    CLI_LOG_FILE = "hts_duty_cli.log"


class DutyMappings:
    """HTS-specific mappings and constants."""

    # Chapter contexts used to ground AI estimates
    CHAPTER_CONTEXTS = {
        "04": "Dairy, eggs, honey, and other edible animal products",
        "06": "Live trees and other plants; cut flowers and ornamental foliage",
        "25": "Salt; sulfur; earths and stone; plastering materials, lime and cement",
        "39": "Plastics and articles thereof",
        "42": "Articles of leather; handbags, wallets, cases, similar containers",
        "61": "Articles of apparel and clothing accessories, knitted or crocheted",
        "62": "Articles of apparel and clothing accessories, not knitted or crocheted",
        "63": "Other made up textile articles",
        "64": "Footwear, gaiters and the like",
        "69": "Ceramic products",
        "71": "Natural or cultured pearls, precious stones, precious metals, imitation jewelry",
        "73": "Articles of iron or steel",
        "76": "Aluminum and articles thereof",
        "84": "Machinery and mechanical appliances",
        "85": "Electrical machinery and equipment",
        "94": "Furniture; bedding, lamps and lighting fittings",
        "95": "Toys, games and sports requisites",
    }

    # Heading contexts
    HEADING_CONTEXTS = {
        "4202": "Trunks, suitcases, handbags, wallets, similar containers",
        "6109": "T-shirts, singlets, tank tops, knitted or crocheted",
        "6110": "Sweaters, pullovers, sweatshirts, knitted or crocheted",
        "7113": "Articles of jewelry and parts thereof, of precious metal",
        "7117": "Imitation jewelry",
        "7323": "Table, kitchen or other household articles of iron or steel",
        "8539": "Electric filament or discharge lamps; LED light sources",
    }
