# lugx_common/settings.py
import os
from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Schema initialisation at startup: fixed number of attempts with a fixed pause.
INIT_RETRIES = int(os.getenv("INIT_RETRIES", "5"))
INIT_RETRY_DELAY = float(os.getenv("INIT_RETRY_DELAY", "5"))


def api_prefix() -> str:
    """
    Optional prefix for routes. Leave empty ("") if the gateway strips /api/<service>.
    If the gateway does NOT strip the prefix, set API_PREFIX="/api/<service>".
    """
    prefix = os.getenv("API_PREFIX", "").strip()
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix.rstrip("/")


def database_url(default_db: str, default_host: str, schema: str, extra_schemas: tuple = ()) -> str:
    """
    DATABASE_URL wins when set; otherwise compose a psycopg3 URL whose
    search_path puts the service schema first.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    user = os.getenv("DB_USER", "lugx_user")
    password = os.getenv("DB_PASS", "lugx_password")
    name = os.getenv("DB_NAME", default_db)
    host = os.getenv("DB_HOST", default_host)
    port = os.getenv("DB_PORT", "5432")

    search_path = ",".join((schema,) + tuple(extra_schemas) + ("public",))
    options = f"-csearch_path={search_path}"
    return (
        f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"
        f"?options={options}"
    )
