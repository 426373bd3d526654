"""CLI for embedding a vault of markdown notes into the local index"""

import argparse
import sys

from loguru import logger

from pkmrag.config import settings
from pkmrag.errors import BackendError
from pkmrag.service import KnowledgeBase


def main(vault: str, index_path: str, force: bool) -> int:
    run_settings = settings.model_copy(
        update={"vault_path": vault, "index_path": index_path, "enable_auto_embed": False}
    )
    knowledge_base = KnowledgeBase.from_settings(run_settings)

    if not knowledge_base.backend.is_available():
        logger.error(f"Ollama is not reachable at {run_settings.ollama_url}")
        return 1

    try:
        stats = knowledge_base.reindex_vault(force=force, on_progress=logger.debug)
    except BackendError as e:
        logger.error(f"Embedding failed: {e}")
        return 1

    logger.info(f"Embedding complete: {stats.summary()}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--vault",
        type=str,
        default=str(settings.vault_path),
        help="Folder containing markdown notes",
    )
    parser.add_argument(
        "--index-path",
        type=str,
        required=False,
        help="Index snapshot file",
        default=settings.index_path,
    )
    parser.add_argument(
        "--force", action="store_true", help="Drop all embeddings and embed every note again"
    )
    parser.add_argument("--log-level", type=str, default=settings.log_level)

    args = parser.parse_args()
    logger.configure(handlers=[{"sink": sys.stderr, "level": args.log_level}])

    sys.exit(main(vault=args.vault, index_path=args.index_path, force=args.force))
