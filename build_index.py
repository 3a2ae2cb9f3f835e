import argparse
import asyncio
import logging
import os
import sys

from marketlens.config import settings
from marketlens.data_source import GammaMarketSource
from marketlens.errors import DataSourceError, VocabularyLoadError
from marketlens.index import save_snapshot
from marketlens.ingestion import QualityPolicy, ingest
from marketlens.vocabulary import clean_keywords, load_vocabulary, split_keywords, write_keyword_file

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("IndexBuilder")


async def build(preset: str, output: str, page_size: int) -> int:
    vocabulary = load_vocabulary(settings.ENTITY_KEYWORDS_PATH, settings.GENERIC_KEYWORDS_PATH)
    policy = QualityPolicy.preset(preset)
    source = GammaMarketSource(base_url=settings.GAMMA_API_URL, timeout=settings.REQUEST_TIMEOUT_SECONDS)
    try:
        snapshot = await ingest(source, vocabulary, policy, page_size=page_size, page_delay=settings.PAGE_DELAY_SECONDS)
    finally:
        await source.aclose()

    directory = os.path.dirname(output)
    if directory:
        os.makedirs(directory, exist_ok=True)
    save_snapshot(snapshot, output)

    keywords = snapshot.keyword_count
    avg = len(snapshot.items) / keywords if keywords else 0.0
    logger.info(f"Markets: {len(snapshot.items)}")
    logger.info(f"Keywords: {keywords}")
    logger.info(f"Avg markets per keyword: {avg:.1f}")
    if snapshot.partial:
        logger.warning(f"Index built from a partial fetch: {snapshot.fetch_error}")
    return 0


def split(input_path: str, output_dir: str) -> int:
    with open(input_path, "r", encoding="utf-8") as f:
        raw = clean_keywords(f.read().splitlines())
    entities, generic, uncertain = split_keywords(raw)
    write_keyword_file(os.path.join(output_dir, "entity_keywords.txt"), entities)
    write_keyword_file(os.path.join(output_dir, "generic_keywords.txt"), generic)
    write_keyword_file(os.path.join(output_dir, "uncertain_keywords.txt"), uncertain)
    logger.info(f"Sample entities: {', '.join(entities[:10])}")
    logger.info(f"Sample generic: {', '.join(generic[:10])}")
    logger.info(f"{len(uncertain)} uncertain keywords need manual review")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Build the precomputed market index or split a keyword dump")
    sub = parser.add_subparsers(dest="command", required=True)

    build_parser = sub.add_parser("build", help="Fetch markets and write the index document")
    build_parser.add_argument("--preset", choices=["strict", "loose"], default=settings.QUALITY_PRESET)
    build_parser.add_argument("--output", default=settings.INDEX_EXPORT_PATH)
    build_parser.add_argument("--page-size", type=int, default=settings.PAGE_SIZE)

    split_parser = sub.add_parser("split", help="Split a raw keyword list into entity / generic / uncertain files")
    split_parser.add_argument("input")
    split_parser.add_argument("--output-dir", default="data")

    args = parser.parse_args()
    try:
        if args.command == "build":
            code = asyncio.run(build(args.preset, args.output, args.page_size))
        else:
            code = split(args.input, args.output_dir)
    except (VocabularyLoadError, DataSourceError) as e:
        logger.error(str(e))
        code = 1
    sys.exit(code)
