"""DBOS configuration and initialization."""

import os
from dbos import DBOS, DBOSConfig

from vigil.config import settings

# application_version prevents recovery of old workflows after code changes
# Bump this when workflow step order/logic changes to avoid DBOSUnexpectedStepError
WORKFLOW_VERSION = "1"

dbos_config: DBOSConfig = {
    "name": "vigil",
    "system_database_url": os.environ.get("DBOS_SYSTEM_DATABASE_URL") or settings.database_url,
    "application_version": WORKFLOW_VERSION,
}

# Initialize DBOS - must be done before defining workflows
DBOS(config=dbos_config)
