from ragingest.providers.embedding.cohere_embedding_provider import CohereEmbeddingProvider
from ragingest.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["CohereEmbeddingProvider", "OpenAIEmbeddingProvider"]
