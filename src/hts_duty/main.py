import asyncio
from typing import Optional, Tuple

from loguru import logger

from hts_duty.classifier.duty_classifier import DutyClassifier
from hts_duty.models.duty_models import DutyRateRecord, UnresolvedResult
from hts_duty.models.errors import DutyEngineError
from hts_duty.services.override_service import build_override_record
from hts_duty.utils.logging_utils import log_system_error, log_system_startup, log_system_success, setup_logger


def setup_logging():
    """Configure logging settings with proper initialization."""
    try:
        setup_logger("hts_duty_cli")
        log_system_startup("HTS Duty Rate Engine")
        return True
    except Exception as e:
        print(f"Failed to setup logging: {e}")
        return False


def split_query(line: str) -> Tuple[str, Optional[str]]:
    """Split ``<code> | <description>`` input; either side may be empty."""
    code, _, description = line.partition('|')
    return code.strip(), (description.strip() or None)


def print_record(result) -> None:
    if isinstance(result, UnresolvedResult):
        tried = ', '.join(tier.value for tier in result.attempted_tiers) or 'none'
        print(f"\nNo duty rate found (tiers tried: {tried})")
        return

    record: DutyRateRecord = result
    print("\nResult:")
    print("-" * 80)
    print(f"HS Code: {record.code}")
    print(f"Description: {record.description}")
    print(f"Duty Rate: {record.rate_text} ({record.rate_percentage * 100:.2f}%)"
          f"{' [estimate]' if record.rate_is_estimate else ''}")
    if record.special_rate_text:
        print(f"Special Rate: {record.special_rate_text}")
    if record.unit_of_quantity:
        print(f"Unit of Quantity: {record.unit_of_quantity}")
    tier = record.tier.value
    if record.source_tier:
        tier = f"{tier} (from {record.source_tier.value})"
    print(f"Source: {tier} | Confidence: {record.confidence.value}")
    if record.provenance:
        print(f"Location: sheet '{record.provenance.sheet_name}', row {record.provenance.row_number}")
    if record.reasoning:
        print(f"Reasoning: {record.reasoning}")
    print("-" * 80)


async def print_stats(classifier: DutyClassifier) -> None:
    stats = await classifier.stats()
    logger.info("Statistics requested")
    print("\nEngine Statistics:")
    if 'store_error' in stats:
        print(f"Store unavailable: {stats['store_error']}")
    else:
        cache = stats['cache']
        print(f"Cached entries: {cache['total_entries']}")
        for tier, count in sorted(cache['entries_by_tier'].items()):
            print(f"  {tier}: {count}")
        print(f"Override entries: {stats['overrides']}")
    index = stats['reference_index']
    if index:
        print(f"Reference workbook: {index['total_sheets']} sheets, {index['total_rows']} rows")
        print(f"Sheets: {', '.join(index['sheet_names'])}")
    else:
        print("Reference workbook: not loaded yet")


async def promote(classifier: DutyClassifier, args: str) -> None:
    head, description = split_query(args)
    parts = head.split(None, 1)
    if len(parts) != 2:
        print("Usage: promote <code> <rate text> [| description]")
        return

    code, rate_text = parts
    try:
        record = build_override_record(code, rate_text, description=description)
    except (DutyEngineError, ValueError) as e:
        print(f"Cannot promote: {str(e)}")
        return

    override = await classifier.promote_to_override(code, record)
    log_system_success("Override", f"{override.code} -> {override.rate_text}")
    print(f"Override stored for {override.code}: {override.rate_text}")


async def run_cli() -> None:
    """Interactive resolution loop."""
    classifier = DutyClassifier()
    await classifier.initialize()

    print("\nHTS Duty Rate Engine")
    print("Enter '<hs code> | <description>' to resolve a rate (either part may be empty)")
    print("Enter 'promote <hs code> <rate text> | <description>' to curate an override")
    print("Enter 'stats' to view statistics, 'quit' to exit\n")

    while True:
        line = (await asyncio.to_thread(input, "Query: ")).strip()

        if line.lower() == 'quit':
            logger.info("User requested shutdown")
            break

        if line.lower() == 'stats':
            await print_stats(classifier)
            continue

        if line.lower().startswith('promote '):
            await promote(classifier, line[len('promote '):])
            continue

        code, description = split_query(line)
        if not code and not description:
            print("Please enter an HS code or a description")
            continue

        try:
            result = await classifier.resolve(code=code or None, description=description)
            print_record(result)
        except DutyEngineError as e:
            log_system_error("Resolution", str(e))
            print(f"Error processing request: {str(e)}")


def main():
    """Main entry point for the duty rate engine CLI."""
    if not setup_logging():
        print("Warning: Logging setup failed, continuing without proper logging")

    try:
        asyncio.run(run_cli())
    except (KeyboardInterrupt, EOFError):
        logger.info("Interrupted, shutting down")
    except DutyEngineError as e:
        log_system_error("System", str(e))
        print(f"Error initializing system: {str(e)}")


if __name__ == "__main__":
    main()
