import sys

from loguru import logger

from pkmrag.api import create_app
from pkmrag.config import settings
from pkmrag.service import KnowledgeBase

logger.configure(handlers=[{"sink": sys.stderr, "level": settings.log_level}])

logger.info(
    f"Initializing knowledge base for {settings.vault_path} with Ollama at {settings.ollama_url}"
)
knowledge_base = KnowledgeBase.from_settings(settings)
logger.info(
    f"Loaded index with {knowledge_base.index.total_chunks} chunks "
    f"for {knowledge_base.index.total_notes} notes"
)
app = create_app(knowledge_base=knowledge_base)
