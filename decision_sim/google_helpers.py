import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv
from google.auth import default as google_auth_default
from google.cloud import secretmanager
from google.oauth2 import service_account
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger("decision_sim")

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

LOCAL_SQLITE_URL = "sqlite:///simulations.db"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )


@dataclass(frozen=True)
class Settings:
    project_id: str
    region: str
    model_name: str
    llm_timeout: float
    llm_max_attempts: int
    safety_threshold: str
    database_url: str


def _build_creds():
    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    scopes = ["https://www.googleapis.com/auth/cloud-platform"]
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
    creds, _ = google_auth_default(scopes=scopes)
    return creds


def get_db_password(project_id: str) -> str:
    password = os.environ.get("DB_PASSWORD")
    if password:
        return password

    secret_id = os.environ.get("DB_SECRET_ID")
    if secret_id:
        client = secretmanager.SecretManagerServiceClient(credentials=_build_creds())
        name = client.secret_version_path(project_id, secret_id, "latest")
        resp = client.access_secret_version(request={"name": name})
        return resp.payload.data.decode("utf-8")

    raise RuntimeError("No DB_PASSWORD and no Secret Manager configured")


def resolve_database_url(project_id: str) -> str:
    """
    DATABASE_URL wins; otherwise a remote DB_HOST means Postgres over pg8000,
    and no host (or localhost) means the local SQLite file.
    """
    url = os.getenv("DATABASE_URL", "")
    if url:
        return url

    db_host = os.environ.get("DB_HOST", "localhost")
    if db_host == "localhost":
        return LOCAL_SQLITE_URL

    db_port = int(os.environ.get("DB_PORT", "5432"))
    db_name = os.environ["DB_NAME"]
    db_user = os.environ["DB_USER"]
    password = get_db_password(project_id)
    return f"postgresql+pg8000://{db_user}:{password}@{db_host}:{db_port}/{db_name}"


def cors_origins_from_env() -> tuple[str, ...]:
    # read when the app is built, before Settings are loaded
    origins = os.getenv("CORS_ALLOW_ORIGINS", "*")
    return tuple(o.strip() for o in origins.split(",") if o.strip())


def load_settings() -> Settings:
    load_dotenv()

    project_id = os.getenv("GOOGLE_CLOUD_PROJECT", "")
    if not project_id:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT is not set; cannot configure Vertex AI")

    return Settings(
        project_id=project_id,
        region=os.getenv("GOOGLE_CLOUD_REGION", "us-central1"),
        model_name=os.getenv("LLM_MODEL_NAME", "gemini-2.5-flash-lite"),
        llm_timeout=float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
        llm_max_attempts=max(1, int(os.getenv("LLM_MAX_ATTEMPTS", "1"))),
        safety_threshold=os.getenv("LLM_SAFETY_THRESHOLD", "BLOCK_MEDIUM_AND_ABOVE"),
        database_url=resolve_database_url(project_id),
    )


def get_db_engine(database_url: str):
    if database_url.startswith("sqlite"):
        logger.info(f"[DB] Using SQLite URL: {database_url}")
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    logger.info("[DB] Connecting to Postgres at %s", database_url.split("@")[-1])
    # pg8000 supports 'timeout' in seconds
    return create_engine(
        database_url,
        connect_args={"timeout": 10},
        pool_pre_ping=True,
    )


def create_session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
