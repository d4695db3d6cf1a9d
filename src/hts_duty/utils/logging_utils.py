"""
Logging utilities for the HTS duty engine.
"""
import sys
from loguru import logger
from hts_duty.config.settings import Config


def setup_logger(module_name: str = "hts_duty") -> None:
    """
    Configure logging settings for the application.

    Args:
        module_name: Name of the module for log file naming
    """
    # Remove default handler to avoid duplicate logs
    logger.remove()

    # Add console handler with INFO level
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        level="INFO"
    )

    Config.LOGS_DIR.mkdir(parents=True, exist_ok=True)

    if module_name == "hts_duty":
        log_filename = Config.MAIN_LOG_FILE
    elif module_name == "hts_duty_cli":
        log_filename = Config.CLI_LOG_FILE
    else:
        log_filename = f"{module_name}.log"

    log_file = Config.LOGS_DIR / log_filename

    # Add file handler with detailed format
    logger.add(
        log_file,
        rotation=Config.LOG_ROTATION,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
        level="DEBUG",
        retention=Config.LOG_RETENTION_DAYS,
        compression=Config.LOG_COMPRESSION
    )

    logger.info(f"Logger initialized for {module_name}")
    logger.info(f"Log file: {log_file}")


def log_resolution_attempt(code: str, description: str) -> None:
    """Log resolution attempt with standardized format."""
    summary = (description or '')[:50]
    logger.info(f"🔍 Resolution attempt: code={code or '-'} | description='{summary}'")


def log_tier_hit(tier: str, code: str, rate_text: str) -> None:
    """Log the tier that answered a query."""
    logger.info(f"✅ {tier} hit for {code}: {rate_text}")


def log_tier_miss(tier: str, code: str, reason: str = "no match") -> None:
    """Log a tier miss."""
    logger.debug(f"⏭️ {tier} miss for {code}: {reason}")


def log_index_build(sheet_count: int, row_count: int, seconds: float) -> None:
    """Log a completed reference index build."""
    logger.info(f"📚 Reference index built: {sheet_count} sheets | {row_count} rows | {seconds:.2f}s")


def log_system_startup(component: str) -> None:
    """Log system component startup."""
    logger.info(f"🚀 Starting {component}")


def log_system_error(component: str, error: str) -> None:
    """Log system errors with standardized format."""
    logger.error(f"❌ {component} Error: {error}")


def log_system_success(component: str, message: str) -> None:
    """Log system success with standardized format."""
    logger.success(f"✅ {component}: {message}")
