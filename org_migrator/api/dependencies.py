"""Engine wiring for the API, overridable through FastAPI dependency overrides."""

import os
import re
from typing import Dict, List, Optional

from ..config import EngineConfig
from ..connections.base import OrgConnection
from ..connections.salesforce import SalesforceConnection
from ..engine import ConnectionProvider, MigrationEngine
from ..exceptions import ConfigurationError
from ..run_store import JsonFileRunStore
from ..services.template_store import TemplateStore

TEMPLATE_DIR_ENV = "ORG_MIGRATOR_TEMPLATE_DIR"
CORS_ORIGINS_ENV = "ORG_MIGRATOR_CORS_ORIGINS"

_engine: Optional[MigrationEngine] = None


def _env_name(org_id: str, suffix: str) -> str:
    return f"ORG_MIGRATOR_ORG_{re.sub(r'[^A-Za-z0-9]', '_', org_id).upper()}_{suffix}"


def cors_origins() -> List[str]:
    """Origins allowed to call the API from a browser; none unless configured."""
    raw = os.environ.get(CORS_ORIGINS_ENV, "")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def env_connection_provider(config: EngineConfig) -> ConnectionProvider:
    """
    Connections configured per org through the environment.

    Org ``00Dxx`` reads ``ORG_MIGRATOR_ORG_00DXX_URL`` and
    ``ORG_MIGRATOR_ORG_00DXX_TOKEN``.
    """
    connections: Dict[str, OrgConnection] = {}

    def provider(org_id: str) -> OrgConnection:
        if org_id not in connections:
            instance_url = os.environ.get(_env_name(org_id, "URL"))
            token = os.environ.get(_env_name(org_id, "TOKEN"))
            if not instance_url or not token:
                raise ConfigurationError(f"No credentials configured for org {org_id}")
            connections[org_id] = SalesforceConnection(
                instance_url=instance_url,
                session_id=token,
                org_id=org_id,
                api_version=config.api_version,
                timeout=config.call_timeout_seconds,
            )
        return connections[org_id]

    return provider


def get_engine() -> MigrationEngine:
    """Process-wide engine built from the environment on first use."""
    global _engine
    if _engine is None:
        config = EngineConfig.from_env()
        _engine = MigrationEngine(
            template_store=TemplateStore(os.environ.get(TEMPLATE_DIR_ENV, "./templates")),
            connection_provider=env_connection_provider(config),
            config=config,
            run_store=JsonFileRunStore(config.output_dir),
        )
    return _engine
