# Tools module
from .llm_service import LLMService
from .provider_manager import ProviderManager
from .json_repair import LLMJSONError, parse_json_object

__all__ = [
    # LLM
    "LLMService",
    "ProviderManager",
    # JSON repair
    "LLMJSONError",
    "parse_json_object",
]
