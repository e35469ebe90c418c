import logging
import os

from google.cloud import secretmanager

from recurring_scheduler.config import settings

logger = logging.getLogger(__name__)


def secret_version_name(secret_id: str, version_id: str = "latest") -> str | None:
    project_id = settings.gcp_project_id or os.environ.get("GCP_PROJECT_ID", "")
    if not project_id:
        return None
    return f"projects/{project_id}/secrets/{secret_id}/versions/{version_id}"


def get_secret(secret_id: str, version_id: str = "latest") -> str | None:
    """Read a secret payload, stripped of the trailing newline editors tend to add."""
    name = secret_version_name(secret_id, version_id)
    if not name:
        logger.warning("GCP project ID not configured; cannot read secret %s.", secret_id)
        return None

    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(request={"name": name})
    except Exception:
        logger.exception("Failed to fetch secret %s", secret_id)
        return None
    value = response.payload.data.decode("UTF-8").strip()
    return value or None
