# =============================================================================
# Stream Client -- Logging
# =============================================================================

import logging

logger = logging.getLogger("stream_client")
logger.addHandler(logging.NullHandler())
