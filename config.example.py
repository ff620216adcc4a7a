# config.example.py

"""
Documentation-only module (safe to commit).

Settings are read from environment variables, optionally through a local .env
file (see hearth.config). Keep API keys in .env, which is gitignored.
"""

ENV_VARS = {
    # App / logging
    "HEARTH_APP_NAME": "App display name (default: hearth).",
    "HEARTH_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths (gitignored)
    "HEARTH_DATA_DIR": "Local data directory (default: .local/hearth).",
    "HEARTH_STORE_DB_PATH": "Record store SQLite path (default: <data_dir>/store.sqlite3).",
    "HEARTH_BLOB_DB_PATH": "Blob store SQLite path (default: <data_dir>/blobs.sqlite3).",
    # Upstream (OpenAI-compatible chat completions)
    "HEARTH_UPSTREAM_API_KEY": "API key; OPENAI_API_KEY is used when unset. No key => offline demo client.",
    "HEARTH_UPSTREAM_BASE_URL": "Base URL (default: https://api.openai.com/v1).",
    "HEARTH_UPSTREAM_MODEL": "Model used when a task names none (default: gpt-4o-mini).",
    "HEARTH_UPSTREAM_TEMPERATURE": "Sampling temperature (default: 0.7).",
    "HEARTH_UPSTREAM_MAX_TOKENS": "Completion token cap; 0 or unset sends none.",
    "HEARTH_UPSTREAM_CONNECT_TIMEOUT_SECONDS": "Connect timeout (default: 5).",
    "HEARTH_UPSTREAM_READ_TIMEOUT_SECONDS": "Read timeout (default: 60).",
    # Tasks
    "HEARTH_TASK_RETENTION_SECONDS": "Settled tasks older than this are removed by /cleanup (default: 86400).",
    "HEARTH_BACKGROUND_ENABLED": "Attach the background worker at startup (true/false, default: true).",
    # Blobs
    "HEARTH_AVATAR_MAX_PX": "Avatars are shrunk to fit this square (default: 200).",
    "HEARTH_AVATAR_QUALITY": "JPEG quality for avatars (default: 90).",
    # Decoding / session
    "HEARTH_DECODER_PREVIEW_CHARS": "Raw text kept on a response format error (default: 500).",
    "HEARTH_PROFILE_CACHE_TTL_SECONDS": "Lifetime of cached chat settings and user data (default: 30).",
}
