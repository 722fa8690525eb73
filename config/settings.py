# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")

    # OpenAI (classification + embeddings)
    OPENAI_API_KEY: str = Field(default="", validation_alias="OPENAI_API_KEY")
    OPENAI_MODEL: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MODEL")
    OPENAI_API_URL: str = "https://api.openai.com/v1/chat/completions"
    OPENAI_EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", validation_alias="OPENAI_EMBEDDING_MODEL"
    )
    OPENAI_EMBEDDING_URL: str = "https://api.openai.com/v1/embeddings"

    # Gemini (classification + embeddings)
    GEMINI_API_KEY: str = Field(default="", validation_alias="GEMINI_API_KEY")
    GEMINI_MODEL: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    GEMINI_EMBEDDING_MODEL: str = Field(
        default="text-embedding-004", validation_alias="GEMINI_EMBEDDING_MODEL"
    )
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta/models"

    # Grok (served through Groq's OpenAI-compatible endpoint)
    GROK_API_KEY: str = Field(default="", validation_alias="GROK_API_KEY")
    GROK_MODEL: str = Field(default="llama-3.1-8b-instant", validation_alias="GROK_MODEL")
    GROK_API_URL: str = Field(
        default="https://api.groq.com/openai/v1/chat/completions",
        validation_alias="GROK_API_URL",
    )

    # Local embedding engine (opt-in, last in the fallback order)
    LOCAL_EMBEDDINGS_ENABLED: bool = Field(
        default=False, validation_alias="LOCAL_EMBEDDINGS_ENABLED"
    )
    EMBEDDING_MODEL_NAME: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Provider priority (comma separated, first wins ties / fallbacks)
    EMBEDDING_PROVIDER_ORDER: str = Field(
        default="openai,gemini,local", validation_alias="EMBEDDING_PROVIDER_ORDER"
    )
    CLASSIFIER_PROVIDER_ORDER: str = Field(
        default="openai,gemini,grok", validation_alias="CLASSIFIER_PROVIDER_ORDER"
    )

    # Outbound calls
    HTTP_TIMEOUT_SECONDS: float = Field(default=30.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    RETRY_MAX_ATTEMPTS: int = Field(default=3, validation_alias="RETRY_MAX_ATTEMPTS")
    RETRY_INITIAL_WAIT: float = Field(default=1.0, validation_alias="RETRY_INITIAL_WAIT")
    RETRY_MAX_WAIT: float = Field(default=8.0, validation_alias="RETRY_MAX_WAIT")
    EMBEDDING_MAX_INPUT_CHARS: int = 8000
    EMBED_CONCURRENCY: int = Field(default=4, validation_alias="EMBED_CONCURRENCY")

    # Diff engine
    MIN_SENTENCE_CHARS: int = Field(default=10, validation_alias="MIN_SENTENCE_CHARS")
    MATCH_EMBEDDING_THRESHOLD: float = Field(
        default=0.65, validation_alias="MATCH_EMBEDDING_THRESHOLD"
    )
    MATCH_LEXICAL_THRESHOLD: float = Field(
        default=0.7, validation_alias="MATCH_LEXICAL_THRESHOLD"
    )
    MATCH_MAX_SOURCE_SENTENCES: int = Field(
        default=40, validation_alias="MATCH_MAX_SOURCE_SENTENCES"
    )
    MATCH_MAX_UNMATCHED: int = Field(default=10, validation_alias="MATCH_MAX_UNMATCHED")

    # Classification
    CLASSIFY_MAX_ADDED: int = Field(default=5, validation_alias="CLASSIFY_MAX_ADDED")
    CLASSIFY_MAX_MISSING: int = Field(default=3, validation_alias="CLASSIFY_MAX_MISSING")
    CONTEXT_CHARS: int = Field(default=500, validation_alias="CONTEXT_CHARS")
    CLASSIFY_TEMPERATURE: float = 0.3
    CLASSIFY_MAX_TOKENS: int = 300
    REFERENCE_SOURCE_NAME: str = Field(
        default="Wikipedia", validation_alias="REFERENCE_SOURCE_NAME"
    )
    CANDIDATE_SOURCE_NAME: str = Field(
        default="Grokipedia", validation_alias="CANDIDATE_SOURCE_NAME"
    )

    # Logging knobs
    LOGGER_NAME: str = "article-discrepancy"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    # Prompts
    CLASSIFY_SYSTEM_PROMPT: str = (
        "You are a precise fact-checking assistant. You compare a claim from one "
        "encyclopedic source against another source and label the discrepancy.\n"
        "\n"
        "Rules:\n"
        "- Judge ONLY from the provided claim and context.\n"
        "- Pick exactly ONE label from the list you are given.\n"
        "- Keep the explanation to 1-2 sentences.\n"
        '- Return JSON ONLY: {"label":"...","confidence":0.0-1.0,"explanation":"..."}\n'
    )

    def provider_order(self, raw: str) -> list[str]:
        return [p.strip().lower() for p in raw.split(",") if p.strip()]


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
